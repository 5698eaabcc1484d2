"""Spindle Core -- ambient primitives shared by the engine.

Architecture::

    errors.py     Structured error hierarchy (SpindleError, ConfigError)
    logging.py    structlog configuration and logger factory
    settings.py   pydantic-settings defaults (SPINDLE_* environment)
"""

from spindle.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    OrchestrationError,
    SpindleError,
    is_retryable,
)
from spindle.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from spindle.core.settings import SpindleSettings, get_settings, reset_settings

__all__ = [
    # Errors
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "OrchestrationError",
    "SpindleError",
    "is_retryable",
    # Logging
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
    # Settings
    "SpindleSettings",
    "get_settings",
    "reset_settings",
]
