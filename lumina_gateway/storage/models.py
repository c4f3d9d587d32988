"""
Data models for storage layer.

Defines the quota and cache records kept by the backing store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class UserQuota:
    """Per-user daily generation counter.

    ``last_reset`` is the ISO date (UTC) of the day the counter belongs to.
    """
    user_id: str
    daily_usage: int
    last_reset: str

    def __post_init__(self):
        """Validate the counter is non-negative."""
        if self.daily_usage < 0:
            raise ValueError("daily_usage cannot be negative")


@dataclass(frozen=True)
class CacheEntry:
    """Immutable cached generation result.

    Entries are never updated in place. Regenerated content is inserted as a
    new row under the same hash and shadows the older one.
    """
    hash: str
    content: Any
    kind: str
    inserted_at: datetime
