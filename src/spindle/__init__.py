"""Spindle — a minimal handler-graph workflow engine.

Handlers are wired into a directed graph by string actions and executed by
a :class:`~spindle.orchestration.Pipeline` that follows those actions. A
shared context flows through the graph so handlers can communicate without
referencing each other.

    spindle.core            errors, structlog logging, settings
    spindle.orchestration   handlers, pipelines, batch variants
"""

from spindle.orchestration import (
    DEFAULT_ACTION,
    ActionResult,
    BaseHandler,
    BatchConfig,
    BatchHandler,
    BatchPipeline,
    BatchResult,
    ConditionalTransition,
    ConstructionError,
    ContextIsolationError,
    Handler,
    HandlerParams,
    MisuseError,
    ParallelBatchHandler,
    ParallelBatchPipeline,
    Pipeline,
    RetryPolicy,
    SharedContext,
    run_sync,
)

__version__ = "0.1.0"

__all__ = [
    "ActionResult",
    "BaseHandler",
    "BatchConfig",
    "BatchHandler",
    "BatchPipeline",
    "BatchResult",
    "ConditionalTransition",
    "ConstructionError",
    "ContextIsolationError",
    "DEFAULT_ACTION",
    "Handler",
    "HandlerParams",
    "MisuseError",
    "ParallelBatchHandler",
    "ParallelBatchPipeline",
    "Pipeline",
    "RetryPolicy",
    "SharedContext",
    "run_sync",
    "__version__",
]
