"""Batch Handlers — apply one computation to every item of a collection.

ARCHITECTURE
────────────
::

    BatchHandler.run(context)
      ├── prepare_batch_inputs(context)            → items
      ├── per item: RetryPolicy.execute(handle_single_item, item, handle_item_error)
      │     max_concurrency == 1 → one item at a time
      │     max_concurrency  > 1 → chunks of that size, each chunk fully
      │                             settled before the next starts
      └── process_batch_results(context, items, BatchResult) → action

    ParallelBatchHandler.run(context)
      ├── prepare_batch_inputs(context)            → items
      ├── every item dispatched at once (one wave, gather)
      │     the first unrecovered item failure fails the whole handler
      └── process_batch_results(context, items, outputs) → action

Per-item computation runs without access to the context, so concurrent
items never race on it.

Fail-fast with chunks: the failing chunk is awaited in full (nothing is
cancelled), outcomes are recorded in submission order up to and including
the first failure, and no later chunk starts.

Example::

    class FetchAll(BatchHandler[str, str]):
        def prepare_batch_inputs(self, context):
            return context["urls"]

        async def handle_single_item(self, url):
            return await http_get(url)

        def process_batch_results(self, context, urls, result):
            context["pages"] = result.results
            return "partial" if result.failed else "default"

    fetch_all = FetchAll(max_concurrency=8, fail_fast=False, max_retries=3)
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Awaitable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from spindle.core.errors import InvalidConfigError
from spindle.core.settings import get_settings
from spindle.orchestration.base_handler import BaseHandler
from spindle.orchestration.batch_result import BatchResult
from spindle.orchestration.retry import RetryPolicy
from spindle.orchestration.shared_context import DEFAULT_ACTION, ActionResult, SharedContext

ItemT = TypeVar("ItemT")
OutputT = TypeVar("OutputT")


@dataclass(frozen=True)
class BatchConfig:
    """
    Batch processing configuration.

    Attributes:
        max_concurrency: Chunk size (>= 1); 1 processes items sequentially
        fail_fast: Stop processing further items after the first failure
        max_retries: Attempts per item (>= 1)
        retry_delay: Seconds between attempts of the same item (>= 0)
    """

    max_concurrency: int = 1
    fail_fast: bool = True
    max_retries: int = 1
    retry_delay: float = 0.0

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise InvalidConfigError("max_concurrency", self.max_concurrency, "must be >= 1")
        RetryPolicy(max_retries=self.max_retries, retry_delay=self.retry_delay)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, retry_delay=self.retry_delay)

    @classmethod
    def from_settings(
        cls,
        max_concurrency: int | None = None,
        fail_fast: bool | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> BatchConfig:
        """Build a config, filling unset values from ``SpindleSettings``."""
        settings = get_settings()
        return cls(
            max_concurrency=settings.max_concurrency if max_concurrency is None else max_concurrency,
            fail_fast=settings.fail_fast if fail_fast is None else fail_fast,
            max_retries=settings.max_retries if max_retries is None else max_retries,
            retry_delay=settings.retry_delay if retry_delay is None else retry_delay,
        )


def _chunked(items: Sequence[ItemT], size: int) -> Iterator[Sequence[ItemT]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class _ItemBatchHandler(BaseHandler[list[ItemT], Any], Generic[ItemT, OutputT]):
    """Shared per-item plumbing of the two batch handler flavours."""

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

    @abstractmethod
    def prepare_batch_inputs(self, context: SharedContext) -> Sequence[ItemT]:
        """Extract the items to process. Must not write to the context."""

    @abstractmethod
    def handle_single_item(self, item: ItemT) -> OutputT | Awaitable[OutputT]:
        """Compute one item. No context access; should be idempotent."""

    def handle_item_error(self, item: ItemT, error: Exception) -> OutputT | Awaitable[OutputT]:
        """Called once per item after its final failed attempt. Re-raises by default."""
        raise error

    def prepare_inputs(self, context: SharedContext) -> list[ItemT]:
        return list(self.prepare_batch_inputs(context))

    async def _process_item(self, item: ItemT) -> OutputT:
        return await self._retry_policy.execute(
            self.handle_single_item,
            item,
            self.handle_item_error,
            log=self._log,
            owner=self.name,
        )


class BatchHandler(_ItemBatchHandler[ItemT, OutputT]):
    """
    Process items sequentially or in bounded-concurrency chunks.

    Item failures are collected into a :class:`BatchResult` instead of being
    raised, so ``process_batch_results`` decides the next action.

    Args:
        max_concurrency: Chunk size; 1 (default) is sequential.
        fail_fast: Stop after the first failed item (default True).
        max_retries: Attempts per item.
        retry_delay: Seconds between attempts of one item.
        logger: Structured logger for diagnostics.
    """

    def __init__(
        self,
        *,
        max_concurrency: int | None = None,
        fail_fast: bool | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        logger: Any = None,
    ) -> None:
        self._config = BatchConfig.from_settings(
            max_concurrency=max_concurrency,
            fail_fast=fail_fast,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        super().__init__(
            max_retries=self._config.max_retries,
            retry_delay=self._config.retry_delay,
            logger=logger,
        )

    @property
    def batch_config(self) -> BatchConfig:
        return self._config

    def process_batch_results(
        self,
        context: SharedContext,
        inputs: list[ItemT],
        result: BatchResult[OutputT],
    ) -> ActionResult:
        """Write batch outcomes to the context and return the next action."""
        return DEFAULT_ACTION

    async def handle_request(self, inputs: list[ItemT]) -> BatchResult[OutputT]:
        if not inputs:
            return BatchResult.empty()
        if self._config.max_concurrency == 1:
            return await self._process_sequentially(inputs)
        return await self._process_concurrently(inputs)

    def process_results(
        self,
        context: SharedContext,
        inputs: list[ItemT],
        outputs: BatchResult[OutputT],
    ) -> ActionResult:
        return self.process_batch_results(context, inputs, outputs)

    async def _process_sequentially(self, inputs: list[ItemT]) -> BatchResult[OutputT]:
        results: list[OutputT] = []
        errors: list[Exception] = []

        for index, item in enumerate(inputs):
            try:
                results.append(await self._process_item(item))
            except Exception as e:
                errors.append(e)
                self._item_failed(index, e)
                if self._config.fail_fast:
                    self._log.warning(
                        "batch.fail_fast",
                        handler=self.name,
                        processed=index + 1,
                        total_items=len(inputs),
                    )
                    break

        return BatchResult(results=results, errors=errors, total_items=len(inputs))

    async def _process_concurrently(self, inputs: list[ItemT]) -> BatchResult[OutputT]:
        results: list[OutputT] = []
        errors: list[Exception] = []
        offset = 0

        for chunk in _chunked(inputs, self._config.max_concurrency):
            outcomes = await asyncio.gather(
                *(self._process_item(item) for item in chunk),
                return_exceptions=True,
            )

            for index, outcome in enumerate(outcomes, start=offset):
                if not isinstance(outcome, BaseException):
                    results.append(outcome)
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                errors.append(outcome)
                self._item_failed(index, outcome)
                if self._config.fail_fast:
                    self._log.warning(
                        "batch.fail_fast",
                        handler=self.name,
                        processed=offset + len(chunk),
                        total_items=len(inputs),
                    )
                    return BatchResult(results=results, errors=errors, total_items=len(inputs))

            offset += len(chunk)

        return BatchResult(results=results, errors=errors, total_items=len(inputs))

    def _item_failed(self, index: int, error: Exception) -> None:
        self._log.warning(
            "batch.item_failed",
            handler=self.name,
            index=index,
            error=str(error),
            error_type=type(error).__name__,
        )


class ParallelBatchHandler(_ItemBatchHandler[ItemT, OutputT]):
    """
    Dispatch every item concurrently in one wave.

    Outputs keep submission order. Any item that still fails after its
    retries and ``handle_item_error`` fails the whole handler with that
    error; items already running are not cancelled. To keep going on
    failures, override ``handle_item_error`` to return an error-shaped
    output.
    """

    def process_batch_results(
        self,
        context: SharedContext,
        inputs: list[ItemT],
        outputs: list[OutputT],
    ) -> ActionResult:
        """Write batch outputs to the context and return the next action."""
        return DEFAULT_ACTION

    async def handle_request(self, inputs: list[ItemT]) -> list[OutputT]:
        outputs = await asyncio.gather(*(self._process_item(item) for item in inputs))
        return list(outputs)

    def process_results(
        self,
        context: SharedContext,
        inputs: list[ItemT],
        outputs: list[OutputT],
    ) -> ActionResult:
        return self.process_batch_results(context, inputs, outputs)


__all__ = ["BatchConfig", "BatchHandler", "ParallelBatchHandler"]
