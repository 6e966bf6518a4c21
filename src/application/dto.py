"""
application.dto - Data Transfer Objects for service output.

These are the structured results that services return to callers
(CLI commands, REST endpoints, the scheduler).
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BatchStats:
    """Outcome of one consumer-group read."""
    processed: int = 0
    stored: int = 0

    def __add__(self, other: BatchStats) -> BatchStats:
        return BatchStats(self.processed + other.processed, self.stored + other.stored)


@dataclass(frozen=True)
class BotRunStats:
    """Outcome of one bot polling round."""
    found: int = 0
    answered: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
