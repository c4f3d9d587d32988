"""
Per-user daily quota accounting.

The quota window is the UTC calendar day. A stored record whose
``last_reset`` is an earlier day is rewritten to zero before any other quota
logic runs for the request.

``increment`` reads the counter, adds one and writes it back in two separate
storage calls. Two concurrent requests from the same user can both read ``k``
and both write ``k + 1``. Constructing the tracker with ``atomic=True`` swaps
in a single upsert statement that cannot lose updates.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict

from ..storage.models import UserQuota
from ..storage.repository import GatewayRepository
from .errors import QuotaExceeded

logger = logging.getLogger(__name__)


def utc_today() -> str:
    """Current UTC date as an ISO string (``YYYY-MM-DD``)."""
    return datetime.now(timezone.utc).date().isoformat()


class QuotaTracker:
    """Reads, resets and increments per-user daily usage.

    Args:
        repository: Backing store for quota records
        limit: Daily generation limit per user
        atomic: Use a single upsert for ``increment``
        today: Callable returning the current ISO day; injectable for tests
    """

    def __init__(
        self,
        repository: GatewayRepository,
        limit: int,
        atomic: bool = False,
        today: Callable[[], str] = utc_today,
    ):
        self.repository = repository
        self.limit = limit
        self.atomic = atomic
        self._today = today

    async def _load(self, user_id: str) -> UserQuota:
        stored = await asyncio.to_thread(self.repository.get_quota, user_id)
        if stored is None:
            return UserQuota(user_id=user_id, daily_usage=0, last_reset=self._today())
        return stored

    async def _save(self, quota: UserQuota) -> None:
        updated = await asyncio.to_thread(self.repository.update_quota, quota)
        if not updated:
            await asyncio.to_thread(self.repository.insert_quota, quota)

    async def ensure_fresh_window(self, user_id: str) -> UserQuota:
        """Reset the user's counter if it belongs to an earlier day.

        A user without a record is treated as ``usage=0`` for today and
        nothing is written.

        Returns:
            The quota record as it stands for today
        """
        quota = await self._load(user_id)
        today = self._today()
        if quota.last_reset != today:
            logger.info("quota: resetting %s (last reset %s)", user_id, quota.last_reset)
            quota = UserQuota(user_id=user_id, daily_usage=0, last_reset=today)
            await self._save(quota)
        return quota

    async def check(self, user_id: str) -> None:
        """Reject the request if the user has used up today's quota.

        Raises:
            QuotaExceeded: If usage has reached the limit
        """
        quota = await self._load(user_id)
        usage = quota.daily_usage if quota.last_reset == self._today() else 0
        if usage >= self.limit:
            raise QuotaExceeded(
                f"Daily limit of {self.limit} generations reached. Please come back tomorrow."
            )

    async def increment(self, user_id: str) -> int:
        """Count one generation against the user.

        Returns:
            The usage after counting
        """
        today = self._today()
        if self.atomic:
            return await asyncio.to_thread(self.repository.increment_quota, user_id, today)

        quota = await self._load(user_id)
        usage = quota.daily_usage if quota.last_reset == today else 0
        updated = UserQuota(user_id=user_id, daily_usage=usage + 1, last_reset=today)
        await self._save(updated)
        return updated.daily_usage

    async def read(self, user_id: str) -> Dict[str, int]:
        """Report today's usage and the limit without writing anything."""
        quota = await self._load(user_id)
        usage = quota.daily_usage if quota.last_reset == self._today() else 0
        return {"usage": usage, "limit": self.limit}
