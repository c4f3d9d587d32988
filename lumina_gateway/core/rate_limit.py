"""
Per-caller sliding-window request limiter.

Throttles generation requests so one caller cannot hammer the upstream
provider. Each configured window (default: 5 per minute, 60 per hour) counts
the caller's logged requests younger than the window; a request is refused
when any window is already full, and only accepted requests are logged.

Request timestamps live in the backing store, so every worker process sees
the same history. Like the quota counter, check-then-log is two statements:
concurrent requests from one caller can both pass a nearly full window.

Usage::

    limiter = RequestRateLimiter(repository, config.rate_limit_windows)
    await limiter.check(user_id)  # raises RequestRateLimited
"""

import asyncio
import logging
import math
import time
from typing import Callable, Sequence

from ..config.loader import RateWindow
from ..storage.repository import GatewayRepository
from .errors import RequestRateLimited

logger = logging.getLogger(__name__)


def describe_wait(seconds: int) -> str:
    """Human-readable wait, in minutes once it exceeds a minute."""
    if seconds > 60:
        return f"{math.ceil(seconds / 60)} minutes"
    return f"{seconds} seconds"


class RequestRateLimiter:
    """Sliding-window limiter keyed by caller.

    Args:
        repository: Backing store holding the request log
        windows: Windows to enforce; an empty sequence allows everything
        clock: Callable returning epoch seconds; injectable for tests
    """

    def __init__(
        self,
        repository: GatewayRepository,
        windows: Sequence[RateWindow],
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.windows = tuple(windows)
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.windows)

    async def check(self, caller: str) -> None:
        """Admit one request from ``caller`` or refuse it.

        Args:
            caller: Stable caller key (user id or client address)

        Raises:
            RequestRateLimited: If any window is full; ``retry_after`` holds
                the seconds until its oldest request ages out
        """
        if not self.windows:
            return

        now = self._clock()
        horizon = now - max(window.seconds for window in self.windows)
        await asyncio.to_thread(self.repository.prune_requests, caller, horizon)
        times = await asyncio.to_thread(self.repository.request_times, caller, horizon)

        for window in self.windows:
            in_window = [t for t in times if now - t < window.seconds]
            if len(in_window) >= window.max_requests:
                wait = max(1, math.ceil(in_window[0] + window.seconds - now))
                logger.warning(
                    "rate limit: %s exceeded %s window (%d req/%ds), retry in %ds",
                    caller,
                    window.name,
                    window.max_requests,
                    window.seconds,
                    wait,
                )
                raise RequestRateLimited(
                    f"Usage limit reached. Please wait {describe_wait(wait)} before exploring more.",
                    retry_after=wait,
                )

        await asyncio.to_thread(self.repository.log_request, caller, now)
