"""Test Harness — handler doubles and helpers for testing handler graphs.

Manifesto:
Testing a graph means building small handlers that record what happened,
fail on cue, or write a known value. This module provides off-the-shelf
doubles so test code stays short.

ARCHITECTURE
────────────
::

    Test doubles:
      RecordingHandler   → records phase calls, writes output to a context key
      FlakyHandler       → fails the first N attempts, then succeeds
      FailingHandler     → always fails (optional fallback value)

    Helpers:
      make_pipeline(*handlers)        → linear Pipeline over the handlers
      assert_batch_counts(result, …)  → check BatchResult counts

Example::

    from spindle.orchestration.testing import FlakyHandler, RecordingHandler, make_pipeline

    async def test_flow():
        flaky = FlakyHandler(failures=2, max_retries=3)
        done = RecordingHandler(key="done", output=True)
        action = await make_pipeline(flaky, done).run({})
        assert flaky.attempts == 3
"""

from __future__ import annotations

from typing import Any

from spindle.orchestration.batch_result import BatchResult
from spindle.orchestration.handler import Handler
from spindle.orchestration.pipeline import Pipeline
from spindle.orchestration.shared_context import DEFAULT_ACTION, ActionResult, SharedContext

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingHandler(Handler[Any, Any]):
    """Handler that records every phase call.

    Parameters
    ----------
    key
        Context key written with the output in ``process_results``.
        ``None`` writes nothing.
    output
        Value returned by ``handle_request``.
    action
        Action returned by ``process_results``.
    read
        Context key read by ``prepare_inputs`` (``None`` reads nothing).
    """

    def __init__(
        self,
        key: str | None = None,
        output: Any = None,
        action: ActionResult = DEFAULT_ACTION,
        read: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.key = key
        self.output = output
        self.action = action
        self.read = read
        self.calls: list[str] = []
        self.seen_inputs: list[Any] = []

    def prepare_inputs(self, context: SharedContext) -> Any:
        self.calls.append("prepare_inputs")
        return context.get(self.read) if self.read else None

    def handle_request(self, inputs: Any) -> Any:
        self.calls.append("handle_request")
        self.seen_inputs.append(inputs)
        return self.output

    def process_results(self, context: SharedContext, inputs: Any, outputs: Any) -> ActionResult:
        self.calls.append("process_results")
        if self.key is not None:
            context[self.key] = outputs
        return self.action


class FlakyHandler(Handler[Any, Any]):
    """Handler whose computation fails ``failures`` times before succeeding.

    ``attempts`` counts ``handle_request`` calls and ``errors_handled``
    counts ``handle_error`` calls. When ``fallback`` is set, ``handle_error``
    returns it instead of re-raising.
    """

    _NO_FALLBACK = object()

    def __init__(
        self,
        failures: int = 1,
        output: Any = "ok",
        error: type[Exception] = RuntimeError,
        fallback: Any = _NO_FALLBACK,
        key: str = "result",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.failures = failures
        self.output = output
        self.error = error
        self.fallback = fallback
        self.key = key
        self.attempts = 0
        self.errors_handled = 0
        self.fell_back = False

    def handle_request(self, inputs: Any) -> Any:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error(f"attempt {self.attempts} failed")
        return self.output

    def handle_error(self, inputs: Any, error: Exception) -> Any:
        self.errors_handled += 1
        if self.fallback is self._NO_FALLBACK:
            raise error
        self.fell_back = True
        return self.fallback

    def process_results(self, context: SharedContext, inputs: Any, outputs: Any) -> ActionResult:
        context[self.key] = outputs
        return "fallback" if self.fell_back else DEFAULT_ACTION


class FailingHandler(FlakyHandler):
    """Handler whose computation always fails."""

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("failures", 10**9)
        super().__init__(**kwargs)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_pipeline(*handlers: Handler, action: ActionResult = DEFAULT_ACTION) -> Pipeline:
    """Connect ``handlers`` linearly on ``action`` and wrap them in a Pipeline."""
    if not handlers:
        raise ValueError("make_pipeline() requires at least one handler")
    for current, following in zip(handlers, handlers[1:]):
        current.connect_to(following, action)
    return Pipeline(handlers[0])


def assert_batch_counts(
    result: BatchResult,
    *,
    successful: int,
    failed: int,
    total: int,
) -> None:
    """Assert BatchResult counts and the ``successful + failed <= total`` invariant."""
    assert result.successful == successful, (
        f"Expected {successful} successful, got {result.successful}"
    )
    assert result.failed == failed, f"Expected {failed} failed, got {result.failed}"
    assert result.total_items == total, f"Expected {total} total, got {result.total_items}"
    assert result.successful + result.failed <= result.total_items


__all__ = [
    "FailingHandler",
    "FlakyHandler",
    "RecordingHandler",
    "assert_batch_counts",
    "make_pipeline",
]
