"""Handler — a BaseHandler whose computation is retried and can fall back.

``Handler`` wraps ``handle_request`` in a :class:`RetryPolicy`. When every
attempt fails, ``handle_error(inputs, error)`` decides the outcome. The
default re-raises, which fails the run; overriding it to return a
substitute output turns the failure into a routed fallback that
``process_results`` can see.

Example::

    class FetchPage(Handler[str, str]):
        def prepare_inputs(self, context):
            return context["url"]

        async def handle_request(self, url):
            return await http_get(url)

        def handle_error(self, url, error):
            return ""                      # fallback: empty page

        def process_results(self, context, url, page):
            context["page"] = page
            return "ok" if page else "empty"

    fetch = FetchPage(max_retries=3, retry_delay=0.5)
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any

from spindle.orchestration.base_handler import BaseHandler, InputT, OutputT
from spindle.orchestration.retry import RetryPolicy


class Handler(BaseHandler[InputT, OutputT]):
    """
    Handler with bounded retry and an error fallback hook.

    Args:
        max_retries: Total attempts (>= 1). Defaults to ``SPINDLE_MAX_RETRIES``.
        retry_delay: Seconds between attempts (>= 0). Defaults to
            ``SPINDLE_RETRY_DELAY``.
        logger: Structured logger for diagnostics.

    Raises:
        InvalidConfigError: If ``max_retries < 1`` or ``retry_delay < 0``.
    """

    def __init__(
        self,
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        logger: Any = None,
    ) -> None:
        super().__init__(logger=logger)
        self._retry_policy = RetryPolicy.from_settings(max_retries, retry_delay)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def handle_error(self, inputs: InputT, error: Exception) -> OutputT | Awaitable[OutputT]:
        """Called once after the final failed attempt. Re-raises by default."""
        raise error

    async def _compute(self, inputs: InputT) -> OutputT:
        return await self._retry_policy.execute(
            self.handle_request,
            inputs,
            self.handle_error,
            log=self._log,
            owner=self.name,
        )


__all__ = ["Handler"]
