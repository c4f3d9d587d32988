"""
Classification-driven retry for upstream provider calls.

Each failure is sorted into one of three kinds:

- RATE_LIMITED: explicit 429 status or a rate-limit message
- OVERLOADED: explicit 503 status or an "overloaded"/"unavailable" message
- FATAL: anything else

Fatal failures propagate on the spot. Transient failures are retried with
exponential backoff ``base * 2 ** attempt`` (no jitter), where the base is
2000ms for rate limits and 1000ms for overload.

Usage::

    policy = RetryPolicy()
    result = await policy.execute(lambda: provider.generate(prompt, shape))
"""

import asyncio
import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import UpstreamError, UpstreamFatal, UpstreamOverloaded, UpstreamRateLimited

logger = logging.getLogger(__name__)

_RATE_LIMIT_PATTERN = re.compile(
    r"rate[\s_-]?limit|too many requests|resource[\s_]?exhausted", re.IGNORECASE
)
_OVERLOADED_PATTERN = re.compile(r"overloaded|unavailable", re.IGNORECASE)


class FailureKind(Enum):
    """How a failed upstream call should be treated."""
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    FATAL = "fatal"


def _status_of(error: BaseException) -> Optional[int]:
    """Pull an HTTP status off provider exceptions that expose one."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_failure(error: BaseException) -> FailureKind:
    """Sort an upstream failure into a FailureKind.

    Status codes win over message patterns. Our own UpstreamError subclasses
    keep the kind they already carry.

    Args:
        error: Exception raised by the upstream call

    Returns:
        The failure kind
    """
    if isinstance(error, UpstreamRateLimited):
        return FailureKind.RATE_LIMITED
    if isinstance(error, UpstreamOverloaded):
        return FailureKind.OVERLOADED
    if isinstance(error, UpstreamError):
        return FailureKind.FATAL

    status = _status_of(error)
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status == 503:
        return FailureKind.OVERLOADED

    message = str(error)
    if _RATE_LIMIT_PATTERN.search(message):
        return FailureKind.RATE_LIMITED
    if _OVERLOADED_PATTERN.search(message):
        return FailureKind.OVERLOADED
    return FailureKind.FATAL


class RetryPolicy:
    """Retries transient upstream failures with exponential backoff.

    Args:
        max_attempts: Default attempt budget; 0 and 1 both mean a single try.
        rate_limited_base_ms: Base delay for rate-limit failures.
        overloaded_base_ms: Base delay for overload failures.
        sleep: Awaitable sleep taking seconds; injectable for tests.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        rate_limited_base_ms: int = 2000,
        overloaded_base_ms: int = 1000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")
        self.max_attempts = max_attempts
        self.rate_limited_base_ms = rate_limited_base_ms
        self.overloaded_base_ms = overloaded_base_ms
        self._sleep = sleep

    def delay_ms(self, kind: FailureKind, attempt: int) -> int:
        """Backoff before retrying after the zero-based ``attempt`` failed."""
        base = self.rate_limited_base_ms if kind is FailureKind.RATE_LIMITED else self.overloaded_base_ms
        return base * (2 ** attempt)

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        max_attempts: Optional[int] = None,
    ) -> Any:
        """Run ``operation`` until it succeeds or the budget is spent.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            max_attempts: Override of the default budget for this call

        Returns:
            Whatever the first successful attempt returns

        Raises:
            UpstreamFatal: On the first fatal failure, without retrying
            UpstreamRateLimited: If every attempt was rate limited at the end
            UpstreamOverloaded: If every attempt ended overloaded
        """
        budget = self.max_attempts if max_attempts is None else max_attempts
        attempts = max(budget, 1)

        for attempt in range(attempts):
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                kind = classify_failure(exc)
                if kind is FailureKind.FATAL:
                    if isinstance(exc, UpstreamFatal):
                        raise
                    raise UpstreamFatal(str(exc) or type(exc).__name__, attempts=attempt + 1) from exc

                if attempt == attempts - 1:
                    logger.warning(
                        "retry: giving up after %d/%d attempts (%s)",
                        attempt + 1,
                        attempts,
                        kind.value,
                    )
                    error_cls = UpstreamRateLimited if kind is FailureKind.RATE_LIMITED else UpstreamOverloaded
                    raise error_cls(str(exc) or type(exc).__name__, attempts=attempt + 1) from exc

                delay = self.delay_ms(kind, attempt)
                logger.warning(
                    "retry: attempt %d/%d failed (%s) - retrying in %dms",
                    attempt + 1,
                    attempts,
                    kind.value,
                    delay,
                )
                await self._sleep(delay / 1000.0)
