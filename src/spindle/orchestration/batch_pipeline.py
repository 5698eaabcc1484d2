"""Batch Pipelines — run a whole pipeline once per parameter set.

``BatchHandler`` runs one computation over many items; a batch pipeline
runs an entire multi-step graph over many parameter sets.

ARCHITECTURE
────────────
::

    BatchPipeline.run(context)
      ├── prepare_batch_params(context)          → [params_1, ..., params_n]
      ├── for each params_k, in order:
      │     Pipeline(template.start_handler) with
      │       template params < batch params < params_k
      │     run against the SAME context (run k sees run k-1's writes)
      └── process_batch_results(context, param_sets, None) → action

    ParallelBatchPipeline.run(context)
      ├── prepare_batch_params(context)
      ├── baseline = deep copy of context
      ├── one deep copy per run, all taken before any run starts
      ├── every run concurrently against its own copy
      ├── after all runs settle: merge each copy back in completion order
      │     (see shared_context.merge_isolated)
      └── process_batch_results(context, param_sets, None) → action

Per-run ``Pipeline`` instances keep parameters isolated while handler
instances are shared across runs.

Failure: the first unrecovered error propagates unchanged. A sequential
batch stops at the failing run. A parallel batch lets every run settle,
merges the successful ones, then re-raises the first failure.

Example::

    class ProcessFiles(BatchPipeline):
        def prepare_batch_params(self, context):
            return [{"filename": name} for name in context["filenames"]]

    await ProcessFiles(Pipeline(read_file)).run({"filenames": ["a.txt", "b.txt"]})
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from spindle.orchestration.base_handler import BaseHandler
from spindle.orchestration.exceptions import ConstructionError, MisuseError
from spindle.orchestration.pipeline import Pipeline
from spindle.orchestration.shared_context import (
    DEFAULT_ACTION,
    ActionResult,
    HandlerParams,
    SharedContext,
    isolate_context,
    merge_isolated,
)


class BatchPipeline(BaseHandler[list[HandlerParams], None]):
    """
    Run ``template_pipeline`` sequentially once per parameter set.

    Args:
        template_pipeline: Pipeline whose graph is executed for every run.
        logger: Structured logger for diagnostics.

    Raises:
        ConstructionError: If ``template_pipeline`` is missing.
    """

    def __init__(self, template_pipeline: Pipeline, *, logger: Any = None) -> None:
        super().__init__(logger=logger)
        if not isinstance(template_pipeline, Pipeline):
            raise ConstructionError(
                "Template pipeline is required",
                component="template_pipeline",
            )
        self._template = template_pipeline

    @property
    def template_pipeline(self) -> Pipeline:
        return self._template

    @abstractmethod
    def prepare_batch_params(self, context: SharedContext) -> Sequence[HandlerParams]:
        """Return one parameter set per pipeline run. Must not write to the context."""

    def process_batch_results(
        self,
        context: SharedContext,
        inputs: list[HandlerParams],
        outputs: None,
    ) -> ActionResult:
        """Called after every run has completed; returns the next action."""
        return DEFAULT_ACTION

    def prepare_inputs(self, context: SharedContext) -> list[HandlerParams]:
        return list(self.prepare_batch_params(context))

    def handle_request(self, inputs: list[HandlerParams]) -> None:
        raise MisuseError(
            f"{self.name}.handle_request() must not be called directly; use run()"
        ).with_context(pipeline=self.name)

    def process_results(
        self,
        context: SharedContext,
        inputs: list[HandlerParams],
        outputs: None,
    ) -> ActionResult:
        return self.process_batch_results(context, inputs, outputs)

    def create_pipeline_instance(self, params: HandlerParams) -> Pipeline:
        """Fresh pipeline over the template's graph with this run's parameters."""
        instance = Pipeline(self._template.start_handler, logger=self._log)
        instance.set_params({**self._template.params, **self._params, **params})
        return instance

    async def _run_lifecycle(self, context: SharedContext) -> ActionResult:
        param_sets = self.prepare_inputs(context)
        self._log.debug("batch_pipeline.start", pipeline=self.name, runs=len(param_sets))
        await self._run_batch(context, param_sets)
        return self.process_results(context, param_sets, None)

    async def _run_batch(self, context: SharedContext, param_sets: list[HandlerParams]) -> None:
        for index, params in enumerate(param_sets):
            instance = self.create_pipeline_instance(params)
            try:
                await instance._execute(context)
            except Exception as e:
                self._run_failed(index, e)
                raise

    def _run_failed(self, index: int, error: Exception) -> None:
        self._log.warning(
            "batch_pipeline.run_failed",
            pipeline=self.name,
            index=index,
            error=str(error),
            error_type=type(error).__name__,
        )


class ParallelBatchPipeline(BatchPipeline):
    """
    Run ``template_pipeline`` concurrently once per parameter set.

    Every run gets a deep copy of the shared context, so concurrent runs
    never write to the same object. After all runs settle, each copy is
    merged back through :meth:`merge_isolated_results`, in the order the
    runs completed. Callers needing a deterministic merge order should use
    :class:`BatchPipeline`.

    Raises:
        ContextIsolationError: If a context value cannot be deep copied.
    """

    def merge_isolated_results(
        self,
        context: SharedContext,
        baseline: Mapping[str, Any],
        isolated: Mapping[str, Any],
    ) -> None:
        """Fold one finished run's context copy into the main context.

        Override for custom conflict resolution. ``baseline`` is the
        context as it was before any run started.
        """
        merge_isolated(context, baseline, isolated)

    async def _run_batch(self, context: SharedContext, param_sets: list[HandlerParams]) -> None:
        if not param_sets:
            return

        baseline = isolate_context(context)
        copies = [isolate_context(context) for _ in param_sets]
        instances = [self.create_pipeline_instance(params) for params in param_sets]
        completion_order: list[int] = []

        async def run_one(index: int) -> None:
            try:
                await instances[index]._execute(copies[index])
            finally:
                completion_order.append(index)

        outcomes = await asyncio.gather(
            *(run_one(index) for index in range(len(param_sets))),
            return_exceptions=True,
        )

        first_error: Exception | None = None
        for index in completion_order:
            outcome = outcomes[index]
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._run_failed(index, outcome)
                if first_error is None:
                    first_error = outcome
                continue
            self.merge_isolated_results(context, baseline, copies[index])

        if first_error is not None:
            raise first_error


__all__ = ["BatchPipeline", "ParallelBatchPipeline"]
