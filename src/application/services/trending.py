"""
application.services.trending - This hour's most mentioned topics.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from domain.models import topk_key
from domain.ports import TopK


class TrendingTopicsAnalyzer:
    def __init__(self, topk: TopK):
        self._topk = topk

    async def trending(self, now: Optional[datetime] = None) -> list[str]:
        return [topic for topic in await self._topk.list(topk_key(now)) if topic]
