"""Batch Result — outcome envelope for one BatchHandler invocation.

Manifesto:
    A batch with some failed items is not a failed batch: the handler's
    ``process_batch_results`` decides what partial failure means. For that
    it needs the successful outputs, the errors, and the counts in one
    place. ``BatchResult`` is that envelope.

Invariants:
    - ``successful == len(results)`` and ``failed == len(errors)``
    - ``successful + failed <= total_items``; ``<`` only when fail-fast
      stopped the batch before every item ran

Example::

    def process_batch_results(self, context, items, result):
        context["pages"] = result.results
        if result.failed:
            context["fetch_errors"] = [str(e) for e in result.errors]
            return "partial"
        return "default"

Tags:
    spindle, orchestration, batch-result, envelope
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

OutputT = TypeVar("OutputT")


@dataclass(frozen=True)
class BatchResult(Generic[OutputT]):
    """
    Result from processing a batch of items.

    Attributes:
        results: Successful outputs, in processing order
        errors: Errors for items that failed after retries and fallback
        total_items: Number of items handed to the batch
    """

    results: list[OutputT] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    total_items: int = 0

    @property
    def successful(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def attempted(self) -> int:
        """Items that reached an outcome (less than total after fail-fast)."""
        return self.successful + self.failed

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and self.successful == self.total_items

    @property
    def aborted(self) -> bool:
        """True when fail-fast stopped the batch before every item ran."""
        return self.attempted < self.total_items

    @classmethod
    def empty(cls) -> BatchResult[Any]:
        return cls(results=[], errors=[], total_items=0)

    def to_dict(self) -> dict[str, Any]:
        """Serialize counts and error messages for logging."""
        return {
            "successful": self.successful,
            "failed": self.failed,
            "total_items": self.total_items,
            "errors": [f"{type(e).__name__}: {e}" for e in self.errors],
        }

    def __repr__(self) -> str:
        return (
            f"BatchResult(successful={self.successful}, "
            f"failed={self.failed}, total_items={self.total_items})"
        )


__all__ = ["BatchResult"]
