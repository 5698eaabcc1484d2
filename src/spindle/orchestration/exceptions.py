"""Orchestration exceptions — the engine's own failure modes.

All orchestration exceptions inherit from ``spindle.core.errors.OrchestrationError``
so that callers can catch the entire family with a single ``except`` clause.
Errors raised by handler code are *not* part of this family: they propagate
unchanged.

Hierarchy::

    OrchestrationError  (from spindle.core.errors)
      ├── ConstructionError       ── pipeline built without a start handler
      ├── MisuseError             ── API called in a way that can never work
      └── ContextIsolationError   ── shared-context value cannot be deep copied
"""

from __future__ import annotations

from spindle.core.errors import ErrorCategory, OrchestrationError


class ConstructionError(OrchestrationError):
    """Raised when a pipeline is assembled without a required handler."""

    def __init__(self, message: str, component: str | None = None):
        self.component = component
        super().__init__(message)


class MisuseError(OrchestrationError, TypeError):
    """Raised for programming errors against the engine API.

    Examples: calling a pipeline's ``handle_request`` directly, or calling
    ``run()`` without a shared context.
    """

    default_category = ErrorCategory.MISUSE


class ContextIsolationError(OrchestrationError):
    """Raised when a shared-context value cannot be copied for an isolated run."""

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        super().__init__(
            f"Shared context value for key {key!r} cannot be deep copied: {cause}",
            cause=cause,
        )
        self.context.key = key
