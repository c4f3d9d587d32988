"""
Unit tests for per-user daily quota accounting.
"""

import asyncio

import pytest

from lumina_gateway.core.errors import QuotaExceeded
from lumina_gateway.core.quota import QuotaTracker, utc_today
from lumina_gateway.storage.models import UserQuota


class Clock:
    def __init__(self, day):
        self.day = day

    def __call__(self):
        return self.day


def test_utc_today_is_iso_date():
    today = utc_today()
    assert len(today) == 10
    assert today[4] == "-" and today[7] == "-"


class TestQuotaTracker:
    """Test window resets, checks and increments."""

    @pytest.fixture(autouse=True)
    def _tracker(self, repository):
        self.repository = repository
        self.clock = Clock("2024-05-02")
        self.tracker = QuotaTracker(repository, limit=3, today=self.clock)

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_written(self):
        quota = await self.tracker.ensure_fresh_window("new-user")
        assert quota.daily_usage == 0
        assert quota.last_reset == "2024-05-02"
        assert self.repository.get_quota("new-user") is None

    @pytest.mark.asyncio
    async def test_stale_record_is_reset(self):
        self.repository.insert_quota(UserQuota("u1", 7, "2024-05-01"))

        quota = await self.tracker.ensure_fresh_window("u1")

        assert quota.daily_usage == 0
        assert self.repository.get_quota("u1") == UserQuota("u1", 0, "2024-05-02")

    @pytest.mark.asyncio
    async def test_current_record_is_kept(self):
        self.repository.insert_quota(UserQuota("u1", 2, "2024-05-02"))
        quota = await self.tracker.ensure_fresh_window("u1")
        assert quota.daily_usage == 2

    @pytest.mark.asyncio
    async def test_stale_then_increment_counts_from_zero(self):
        """Usage 7 from yesterday becomes 1 after today's first generation."""
        self.repository.insert_quota(UserQuota("u1", 7, "2024-05-01"))

        await self.tracker.ensure_fresh_window("u1")
        usage = await self.tracker.increment("u1")

        assert usage == 1
        assert self.repository.get_quota("u1") == UserQuota("u1", 1, "2024-05-02")

    @pytest.mark.asyncio
    async def test_increment_creates_record(self):
        assert await self.tracker.increment("u2") == 1
        assert await self.tracker.increment("u2") == 2
        assert self.repository.get_quota("u2").daily_usage == 2

    @pytest.mark.asyncio
    async def test_check_rejects_at_limit(self):
        self.repository.insert_quota(UserQuota("u1", 3, "2024-05-02"))
        with pytest.raises(QuotaExceeded) as exc_info:
            await self.tracker.check("u1")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_check_passes_below_limit(self):
        self.repository.insert_quota(UserQuota("u1", 2, "2024-05-02"))
        await self.tracker.check("u1")

    @pytest.mark.asyncio
    async def test_check_ignores_stale_usage(self):
        self.repository.insert_quota(UserQuota("u1", 3, "2024-05-01"))
        await self.tracker.check("u1")

    @pytest.mark.asyncio
    async def test_read_does_not_write(self):
        self.repository.insert_quota(UserQuota("u1", 5, "2024-05-01"))

        assert await self.tracker.read("u1") == {"usage": 0, "limit": 3}
        assert await self.tracker.read("nobody") == {"usage": 0, "limit": 3}
        assert self.repository.get_quota("u1") == UserQuota("u1", 5, "2024-05-01")
        assert self.repository.get_quota("nobody") is None

    @pytest.mark.asyncio
    async def test_day_rollover(self):
        await self.tracker.increment("u1")
        await self.tracker.increment("u1")
        self.clock.day = "2024-05-03"
        assert await self.tracker.read("u1") == {"usage": 0, "limit": 3}
        assert await self.tracker.increment("u1") == 1


class TestAtomicIncrement:
    """Test the upsert-based increment."""

    @pytest.fixture(autouse=True)
    def _tracker(self, repository):
        self.repository = repository
        self.tracker = QuotaTracker(repository, limit=100, atomic=True, today=lambda: "2024-05-02")

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_all_counted(self):
        results = await asyncio.gather(*(self.tracker.increment("u1") for _ in range(10)))
        assert sorted(results) == list(range(1, 11))
        assert self.repository.get_quota("u1").daily_usage == 10

    @pytest.mark.asyncio
    async def test_stale_record_restarts_at_one(self):
        self.repository.insert_quota(UserQuota("u1", 40, "2024-05-01"))
        assert await self.tracker.increment("u1") == 1
        assert self.repository.get_quota("u1").last_reset == "2024-05-02"
