"""Pipeline — follows action transitions from a start handler until none match.

State machine over the handler graph::

    current = start_handler
    loop:
        action = current.run(context)          # params merged, 3 phases
        next   = current.get_next_handler(action)
        next is None → halt, return action     # not an error
        current = next

A ``Pipeline`` is itself a handler, so it can sit inside a larger graph
(pipeline-as-handler). Its ``handle_request`` is never part of that path:
calling it directly raises :class:`MisuseError`.

There is no cycle detection. A cyclic graph keeps running until some
handler returns an action with no transition.

Example::

    load.when("ok").then(transform).pipe(save)
    load.on("missing", report_missing)

    action = await Pipeline(load).run({"path": "data.csv"})
"""

from __future__ import annotations

from typing import Any

from spindle.orchestration.base_handler import BaseHandler
from spindle.orchestration.exceptions import ConstructionError, MisuseError
from spindle.orchestration.shared_context import DEFAULT_ACTION, ActionResult, SharedContext


class Pipeline(BaseHandler[None, ActionResult]):
    """
    Orchestrates a graph of handlers starting at ``start_handler``.

    Args:
        start_handler: First handler to run.
        logger: Structured logger for diagnostics.

    Raises:
        ConstructionError: If ``start_handler`` is missing or not a handler.
    """

    def __init__(self, start_handler: BaseHandler, *, logger: Any = None) -> None:
        super().__init__(logger=logger)
        if start_handler is None:
            raise ConstructionError("Start handler is required", component="start_handler")
        if not isinstance(start_handler, BaseHandler):
            raise ConstructionError(
                f"Start handler must be a BaseHandler, got {type(start_handler).__name__}",
                component="start_handler",
            )
        self._start_handler = start_handler

    @property
    def start_handler(self) -> BaseHandler:
        return self._start_handler

    def handle_request(self, inputs: None) -> ActionResult:
        raise MisuseError(
            f"{self.name}.handle_request() must not be called directly; use run()"
        ).with_context(pipeline=self.name)

    async def _run_lifecycle(self, context: SharedContext) -> ActionResult:
        return await self._orchestrate(context)

    async def _orchestrate(self, context: SharedContext) -> ActionResult:
        current: BaseHandler | None = self._start_handler
        action: ActionResult = DEFAULT_ACTION
        steps = 0

        self._log.debug("pipeline.start", pipeline=self.name, start=current.name)

        while current is not None:
            action = await current._execute(context)
            steps += 1
            next_handler = current.get_next_handler(action)

            if next_handler is None and current.has_successors():
                self._log.warning(
                    "pipeline.flow_ends",
                    pipeline=self.name,
                    handler=current.name,
                    action=action,
                    available=list(current.available_actions),
                )

            current = next_handler

        self._log.debug("pipeline.complete", pipeline=self.name, action=action, steps=steps)
        return action


__all__ = ["Pipeline"]
