"""Conditional Transition — two-step ``when(action).then(handler)`` wiring.

``handler.when("approved").then(approve)`` reads better than
``handler.connect_to(approve, "approved")`` when a graph has many
branches. Nothing is written to the transition table until ``then`` is
called.

Example::

    review.when("approved").then(publish)
    review.when("rejected").then(notify_author)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spindle.orchestration.base_handler import BaseHandler
    from spindle.orchestration.shared_context import ActionResult


class ConditionalTransition:
    """Deferred transition from ``source`` on ``action``."""

    def __init__(self, source: BaseHandler, action: ActionResult) -> None:
        self._source = source
        self._action = action

    @property
    def source(self) -> BaseHandler:
        return self._source

    @property
    def action(self) -> ActionResult:
        return self._action

    def then(self, target: BaseHandler) -> BaseHandler:
        """Register the transition and return ``target`` for further chaining."""
        return self._source.connect_to(target, self._action)

    def __repr__(self) -> str:
        return f"ConditionalTransition({self._source.name!r}, action={self._action!r})"
