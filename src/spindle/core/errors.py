"""
Error types raised by the Spindle engine itself.

Exceptions thrown from a handler's ``handle_request`` belong to the handler
author and are never wrapped: once retries and fallbacks are used up they
reach the caller unchanged. The classes here cover the engine's own
failure modes, bad configuration and misuse of the orchestration API, and
carry enough structure to be logged as a single event.

Architecture:
    ::

        SpindleError(message, category, retryable, context, cause)
          ├── ConfigError                 CONFIG
          │     └── InvalidConfigError    (key, value)
          └── OrchestrationError          ORCHESTRATION
                └── see spindle.orchestration.exceptions

Examples:
    >>> err = InvalidConfigError("max_retries", 0, "must be >= 1")
    >>> str(err)
    'Invalid configuration for max_retries=0: must be >= 1'
    >>> err.with_context(handler="FetchPage").to_dict()["context"]
    {'handler': 'FetchPage'}

Tags:
    error-handling, exception-hierarchy, spindle-core
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse classification used when logging or routing errors."""

    CONFIG = "CONFIG"                # constructor or settings value out of range
    ORCHESTRATION = "ORCHESTRATION"  # graph wiring, context isolation
    MISUSE = "MISUSE"                # API called in a way that cannot work
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Where in a workflow an error happened.

    Attributes:
        handler: Handler class name
        pipeline: Enclosing pipeline class name
        action: Action label being routed
        key: Shared-context key involved
        metadata: Anything else worth logging
    """

    handler: str | None = None
    pipeline: str | None = None
    action: str | None = None
    key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def known_fields(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls) if f.name != "metadata")

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, with metadata flattened in."""
        data = {
            name: getattr(self, name)
            for name in ("handler", "pipeline", "action", "key")
            if getattr(self, name) is not None
        }
        data.update(self.metadata)
        return data


class SpindleError(Exception):
    """
    Root of every engine-raised exception.

    Subclasses pick their classification through the ``default_category``
    and ``default_retryable`` class attributes; both can be overridden per
    instance.

    Examples:
        >>> SpindleError("bad state").category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category if category is not None else self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **values: Any) -> SpindleError:
        """Record where the error happened and return ``self`` for ``raise``.

        Known :class:`ErrorContext` fields are set directly; other keywords
        land in ``context.metadata``.

        Example:
            raise MisuseError("run() requires a context").with_context(handler="Load")
        """
        known = ErrorContext.known_fields()
        for name, value in values.items():
            if name in known:
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Single-event representation for structured logging."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        where = self.context.to_dict()
        if where:
            data["context"] = where
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ConfigError(SpindleError):
    """A configuration value is unusable. Fix the value; retrying cannot help."""

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """A single named setting has an out-of-range value."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.config_key = key
        self.config_value = value
        text = f"Invalid configuration for {key}={value!r}"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)


class OrchestrationError(SpindleError):
    """Raised by the engine while wiring or running a handler graph."""

    default_category = ErrorCategory.ORCHESTRATION


def is_retryable(error: BaseException) -> bool:
    """Whether a failed computation should be attempted again.

    Engine errors answer through their ``retryable`` flag, so a
    ``ConfigError`` or ``MisuseError`` raised inside ``handle_request`` is
    not retried. Any other exception is.
    """
    if isinstance(error, SpindleError):
        return error.retryable
    return True


__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "OrchestrationError",
    "SpindleError",
    "is_retryable",
]
