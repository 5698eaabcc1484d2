"""
Spindle Logging - structlog setup for engine diagnostics.

The engine never prints. Handlers and pipelines emit dotted event names
(``pipeline.flow_ends``, ``retry.attempt_failed``, ...) with keyword fields
through a structlog logger, either the module default obtained from
:func:`get_logger` or one injected with ``logger=``.

Architecture:
    ::

        configure_logging(level, json_format, service)
            │
            ↓
        processor chain:
          TimeStamper(iso)                 (optional)
          merge_contextvars                ← bind_context / LogContext
          add_log_level, add_logger_name
          service tag                      service="<name>"
          expand SpindleError fields       error=<to_dict()>
          JSONRenderer | ConsoleRenderer
            │
            ↓
        stdlib logging (LoggerFactory)

Examples:
    Worker process, JSON lines:

    >>> configure_logging(level="INFO", json_format=True, service="ingest-worker")
    >>> get_logger(__name__).info("batch.started", items=42)

    Tag every event of one run:

    >>> async with LogContext(run="nightly"):
    ...     await pipeline.run(context)

Tags:
    logging, structlog, observability, spindle-core
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from spindle.core.errors import SpindleError
from spindle.core.settings import get_settings


def _tag_service(service: str) -> Processor:
    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def _expand_spindle_errors(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace SpindleError field values with their structured form."""
    for key, value in event_dict.items():
        if isinstance(value, SpindleError):
            event_dict[key] = value.to_dict()
    return event_dict


def _resolve_json_format(json_format: bool | None) -> bool:
    if json_format is not None:
        return json_format
    log_format = get_settings().log_format
    if log_format is not None:
        return log_format == "json"
    return not sys.stdout.isatty()


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "spindle",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name. Defaults to ``SPINDLE_LOG_LEVEL``.
        json_format: Render JSON lines (True) or colored console output
            (False). ``None`` uses ``SPINDLE_LOG_FORMAT``, then JSON when
            stdout is not a terminal.
        service: Value of the ``service`` field on every event.
        add_timestamp: Prefix events with an ISO ``timestamp`` field.
    """
    level_name = (level or get_settings().log_level).upper()
    level_no = logging.getLevelName(level_name)

    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _tag_service(service),
        _expand_spindle_errors,
    ]

    if _resolve_json_format(json_format):
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_no)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Values bound by an enclosing block under the same keys are restored on
    exit.

    Example:
        with LogContext(pipeline="ingest"):
            with LogContext(pipeline="ingest.retry"):
                ...
            # pipeline == "ingest" again
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._outer: dict[str, Any] = {}

    def _bind(self) -> None:
        current = structlog.contextvars.get_contextvars()
        self._outer = {k: current[k] for k in self._fields if k in current}
        bind_context(**self._fields)

    def _restore(self) -> None:
        unbind_context(*self._fields)
        if self._outer:
            bind_context(**self._outer)

    def __enter__(self) -> LogContext:
        self._bind()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._restore()

    async def __aenter__(self) -> LogContext:
        self._bind()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._restore()


__all__ = [
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
