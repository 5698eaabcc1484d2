"""Base Handler — the three-phase unit of work and its transition table.

Manifesto:
    A handler is the atomic block of a workflow. It reads what it needs
    from the shared context, computes without touching the context, then
    writes its results back and names the next step with an action label.
    Keeping I/O inside the middle phase makes that phase safe to retry and
    safe to run concurrently.

ARCHITECTURE
────────────
::

    BaseHandler.run(context)
      ├── merge params into context (shallow, later wins)
      ├── prepare_inputs(context)            → inputs   (read-only)
      ├── handle_request(inputs)             → outputs  (sync or async, no context)
      └── process_results(context, in, out)  → action   (only phase that writes)

    Transition table (action → next handler):
      connect_to(handler, action="default")  → handler
      pipe(handler)                          → handler
      chain(handler, action="default")       → self
      on(action, handler)                    → self
      when(action).then(handler)             → handler

A handler only *describes* its successors; following them is the job of
:class:`~spindle.orchestration.pipeline.Pipeline`. Running a handler that
has successors directly executes it once and logs a warning.

Example::

    class Greet(BaseHandler[str, str]):
        def prepare_inputs(self, context):
            return context["name"]

        def handle_request(self, name):
            return f"hello {name}"

        def process_results(self, context, inputs, outputs):
            context["greeting"] = outputs
            return "default"

    action = await Greet().run({"name": "spindle"})

Tags:
    spindle, orchestration, handler, lifecycle, transitions
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, Generic, Self, TypeVar

from spindle.core.logging import get_logger
from spindle.orchestration.exceptions import ConstructionError
from spindle.orchestration.retry import call_maybe_async
from spindle.orchestration.shared_context import (
    DEFAULT_ACTION,
    ActionResult,
    HandlerParams,
    SharedContext,
    ensure_context,
    merge_params,
)
from spindle.orchestration.transitions import ConditionalTransition

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseHandler(ABC, Generic[InputT, OutputT]):
    """
    Minimal handler: parameters, transitions, and the three-phase lifecycle.

    Subclasses must implement ``handle_request``; ``prepare_inputs`` and
    ``process_results`` default to returning ``None`` and ``"default"``.

    Args:
        logger: Structured logger receiving this handler's diagnostics.
            Defaults to the module logger.
    """

    def __init__(self, *, logger: Any = None) -> None:
        self._params: dict[str, Any] = {}
        self._successors: dict[ActionResult, BaseHandler] = {}
        self._log = logger if logger is not None else get_logger(__name__)

    @property
    def name(self) -> str:
        return type(self).__name__

    # =========================================================================
    # Parameters
    # =========================================================================

    @property
    def params(self) -> dict[str, Any]:
        """Copy of this handler's parameters."""
        return dict(self._params)

    def set_params(self, params: HandlerParams) -> None:
        """Merge ``params`` into this handler's parameters (later values win)."""
        self._params.update(params)

    # =========================================================================
    # Transitions
    # =========================================================================

    def connect_to(
        self,
        handler: BaseHandler,
        action: ActionResult = DEFAULT_ACTION,
    ) -> BaseHandler:
        """Route ``action`` to ``handler`` and return ``handler``.

        Reconnecting an action replaces its previous target.
        """
        if handler is None:
            raise ConstructionError(
                f"{self.name}.connect_to() requires a handler for action {action!r}",
                component="handler",
            )
        previous = self._successors.get(action)
        if previous is not None and previous is not handler:
            self._log.warning(
                "handler.transition_overwritten",
                handler=self.name,
                action=action,
                previous=previous.name,
                target=handler.name,
            )
        self._successors[action] = handler
        return handler

    def pipe(self, handler: BaseHandler) -> BaseHandler:
        """Linear chaining: ``a.pipe(b).pipe(c)``."""
        return self.connect_to(handler)

    def chain(self, handler: BaseHandler, action: ActionResult = DEFAULT_ACTION) -> Self:
        """Connect and return ``self`` so several routes can be added in a row."""
        self.connect_to(handler, action)
        return self

    def on(self, action: ActionResult, handler: BaseHandler) -> Self:
        """Connect ``action`` to ``handler`` and return ``self``."""
        self.connect_to(handler, action)
        return self

    def when(self, action: ActionResult) -> ConditionalTransition:
        """Start a deferred ``when(action).then(handler)`` connection."""
        return ConditionalTransition(self, action)

    def get_next_handler(self, action: ActionResult) -> BaseHandler | None:
        return self._successors.get(action)

    @property
    def successors(self) -> dict[ActionResult, BaseHandler]:
        """Copy of the transition table."""
        return dict(self._successors)

    def has_successors(self) -> bool:
        return bool(self._successors)

    @property
    def available_actions(self) -> tuple[ActionResult, ...]:
        return tuple(self._successors)

    # =========================================================================
    # Lifecycle (override these)
    # =========================================================================

    def prepare_inputs(self, context: SharedContext) -> InputT:
        """Phase 1: extract inputs from the context. Must not write to it."""
        return None  # type: ignore[return-value]

    @abstractmethod
    def handle_request(self, inputs: InputT) -> OutputT | Awaitable[OutputT]:
        """Phase 2: the computation. No context access; should be idempotent."""

    def process_results(
        self,
        context: SharedContext,
        inputs: InputT,
        outputs: OutputT,
    ) -> ActionResult:
        """Phase 3: write results to the context and return the next action."""
        return DEFAULT_ACTION

    # =========================================================================
    # Execution
    # =========================================================================

    async def _compute(self, inputs: InputT) -> OutputT:
        return await call_maybe_async(self.handle_request, inputs)

    async def _run_lifecycle(self, context: SharedContext) -> ActionResult:
        inputs = self.prepare_inputs(context)
        outputs = await self._compute(inputs)
        return self.process_results(context, inputs, outputs)

    async def _execute(self, context: SharedContext) -> ActionResult:
        """Merge params and run the lifecycle. Used by pipelines for every node."""
        merge_params(context, self._params)
        return await self._run_lifecycle(context)

    async def run(self, context: SharedContext) -> ActionResult:
        """Execute this handler once against ``context`` and return its action.

        Raises:
            MisuseError: If ``context`` is ``None`` or not a mutable mapping.
        """
        context = ensure_context(context, self.name)
        if self._successors:
            self._log.warning(
                "handler.run_outside_pipeline",
                handler=self.name,
                available=list(self._successors),
            )
        return await self._execute(context)

    # =========================================================================
    # Utility
    # =========================================================================

    def describe(self) -> str:
        """One ``A --[action]--> B`` line per transition, or just the name."""
        if not self._successors:
            return self.name
        return "\n".join(
            f"{self.name} --[{action}]--> {target.name}"
            for action, target in self._successors.items()
        )

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return f"{self.name}(actions={list(self._successors)})"


def run_sync(handler: BaseHandler, context: SharedContext) -> ActionResult:
    """Blocking entry point for scripts and notebooks.

    Must not be called from inside a running event loop.
    """
    return asyncio.run(handler.run(context))


__all__ = ["BaseHandler", "InputT", "OutputT", "run_sync"]
