"""
Spindle Orchestration — handler-graph execution engine.

WHY
───
A workflow is a set of small handlers wired together by string actions.
Each handler reads from a shared context, computes, writes back, and names
the next step. The engine follows those names; handlers never reference
each other directly.

ARCHITECTURE
────────────
::

    BaseHandler              ─ 3-phase lifecycle + transition table
      └── Handler            ─ + retry and error fallback
    BatchHandler             ─ one computation over many items (chunks)
    ParallelBatchHandler     ─ one computation over many items (one wave)
    Pipeline                 ─ follows actions from a start handler
    BatchPipeline            ─ a whole pipeline per parameter set, in order
    ParallelBatchPipeline    ─ a whole pipeline per parameter set, concurrent,
                               isolated context copies merged back

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. exceptions.py         ─ engine error hierarchy
2. shared_context.py     ─ context aliases, isolation and merge helpers
3. retry.py              ─ RetryPolicy (bounded retry + fallback)
4. transitions.py        ─ when(action).then(handler)
5. base_handler.py       ─ BaseHandler
6. handler.py            ─ Handler
7. batch_result.py       ─ BatchResult envelope
8. batch_handler.py      ─ BatchHandler, ParallelBatchHandler
9. pipeline.py           ─ Pipeline
10. batch_pipeline.py    ─ BatchPipeline, ParallelBatchPipeline
11. testing.py           ─ handler doubles for tests

Example::

    from spindle.orchestration import Handler, Pipeline

    class Load(Handler[str, list]):
        def prepare_inputs(self, context):
            return context["path"]

        async def handle_request(self, path):
            return await read_rows(path)

        def process_results(self, context, path, rows):
            context["rows"] = rows
            return "loaded" if rows else "empty"

    load = Load(max_retries=3, retry_delay=1.0)
    load.when("loaded").then(Transform()).pipe(Save())
    load.on("empty", ReportEmpty())

    action = await Pipeline(load).run({"path": "trades.csv"})
"""

from spindle.orchestration.base_handler import BaseHandler, run_sync
from spindle.orchestration.batch_handler import (
    BatchConfig,
    BatchHandler,
    ParallelBatchHandler,
)
from spindle.orchestration.batch_pipeline import BatchPipeline, ParallelBatchPipeline
from spindle.orchestration.batch_result import BatchResult
from spindle.orchestration.exceptions import (
    ConstructionError,
    ContextIsolationError,
    MisuseError,
)
from spindle.orchestration.handler import Handler
from spindle.orchestration.pipeline import Pipeline
from spindle.orchestration.retry import RetryPolicy
from spindle.orchestration.shared_context import (
    DEFAULT_ACTION,
    ActionResult,
    HandlerParams,
    SharedContext,
    isolate_context,
    merge_isolated,
)
from spindle.orchestration.transitions import ConditionalTransition

__all__ = [
    # Handlers
    "BaseHandler",
    "Handler",
    "BatchHandler",
    "ParallelBatchHandler",
    "BatchConfig",
    "BatchResult",
    "RetryPolicy",
    # Pipelines
    "Pipeline",
    "BatchPipeline",
    "ParallelBatchPipeline",
    # Transitions
    "ConditionalTransition",
    # Context
    "ActionResult",
    "DEFAULT_ACTION",
    "HandlerParams",
    "SharedContext",
    "isolate_context",
    "merge_isolated",
    # Exceptions
    "ConstructionError",
    "ContextIsolationError",
    "MisuseError",
    # Entry points
    "run_sync",
]
