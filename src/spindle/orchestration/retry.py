"""Retry Policy — bounded retry with a fallback hook.

Manifesto:
    A computation that talks to the outside world fails transiently.
    Handlers should not each reinvent the retry loop, and the rules need
    to be identical whether the computation is a handler's
    ``handle_request`` or one item of a batch.

ARCHITECTURE
────────────
::

    RetryPolicy(max_retries, retry_delay)
      └── execute(fn, arg, on_exhausted)
            attempt 1 ── fail ── sleep(retry_delay)
            attempt 2 ── fail ── sleep(retry_delay)
            ...
            attempt N ── fail ── on_exhausted(arg, error)   # fallback or re-raise

    A success on any attempt short-circuits the loop. No delay is applied
    before the first attempt or after the last one.

Example::

    policy = RetryPolicy(max_retries=3, retry_delay=0.5)
    page = await policy.execute(fetch, url, on_exhausted=lambda url, e: CACHED)

Tags:
    spindle, orchestration, retry, fallback
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from spindle.core.errors import InvalidConfigError, is_retryable
from spindle.core.logging import get_logger
from spindle.core.settings import get_settings

T = TypeVar("T")

logger = get_logger(__name__)


async def call_maybe_async(fn: Callable[..., T | Awaitable[T]], *args: Any) -> T:
    """Call ``fn`` and await the result if it is awaitable.

    Lets handler authors write ``handle_request`` (and error hooks) as
    either plain functions or coroutine functions.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for one computation.

    Attributes:
        max_retries: Total attempts (>= 1); 1 means try once, no retry
        retry_delay: Seconds to sleep between attempts (>= 0)
    """

    max_retries: int = 1
    retry_delay: float = 0.0

    def __post_init__(self):
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise InvalidConfigError("max_retries", self.max_retries, "must be an integer")
        if isinstance(self.retry_delay, bool) or not isinstance(self.retry_delay, (int, float)):
            raise InvalidConfigError("retry_delay", self.retry_delay, "must be a number")
        if self.max_retries < 1:
            raise InvalidConfigError("max_retries", self.max_retries, "must be >= 1")
        if self.retry_delay < 0:
            raise InvalidConfigError("retry_delay", self.retry_delay, "must be >= 0")

    @classmethod
    def from_settings(
        cls,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> RetryPolicy:
        """Build a policy, filling unset values from ``SpindleSettings``."""
        settings = get_settings()
        return cls(
            max_retries=settings.max_retries if max_retries is None else max_retries,
            retry_delay=settings.retry_delay if retry_delay is None else retry_delay,
        )

    async def execute(
        self,
        fn: Callable[[Any], T | Awaitable[T]],
        arg: Any,
        on_exhausted: Callable[[Any, Exception], T | Awaitable[T]],
        *,
        log: Any = None,
        owner: str | None = None,
    ) -> T:
        """Run ``fn(arg)`` up to ``max_retries`` times.

        A ``SpindleError`` whose ``retryable`` flag is False (configuration or
        misuse errors) ends the loop after the attempt that raised it.

        After the final failure, ``on_exhausted(arg, error)`` decides the
        outcome: return a substitute value, or raise (the default hooks
        re-raise ``error`` unchanged).
        """
        log = log if log is not None else logger
        last_error: Exception | None = None
        attempts = 0

        for attempt in range(1, self.max_retries + 1):
            attempts = attempt
            try:
                return await call_maybe_async(fn, arg)
            except Exception as e:
                last_error = e

                if attempt == self.max_retries or not is_retryable(e):
                    break

                log.warning(
                    "retry.attempt_failed",
                    handler=owner,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(e),
                )
                if self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay)

        log.warning(
            "retry.exhausted",
            handler=owner,
            attempts=attempts,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        return await call_maybe_async(on_exhausted, arg, last_error)


__all__ = ["RetryPolicy", "call_maybe_async"]
