"""
infrastructure.persistence.migrations - Index creation.

Called once at startup by the factory. Safe to call repeatedly: indexes
that already exist are left untouched.
"""

from __future__ import annotations

import logging

from infrastructure.persistence.connection import RedisConnection
from infrastructure.persistence.search import IndexSpec, ensure_index

logger = logging.getLogger(__name__)


async def run_migrations(connection: RedisConnection, specs: list[IndexSpec]) -> list[str]:
    """Create all missing search indexes. Returns the names that were created."""
    created = []
    for spec in specs:
        if await ensure_index(connection, spec):
            created.append(spec.name)
    logger.info("Indexes ready (%d created, %d existing)", len(created), len(specs) - len(created))
    return created
