"""Process-wide defaults for handler configuration and logging.

``SpindleSettings`` supplies the values a handler uses when it is
constructed without explicit configuration. Explicit constructor arguments
always win.

Fields
──────
max_retries     : Attempts per computation (1 = try once, no retry)
retry_delay     : Seconds slept between attempts
max_concurrency : Batch chunk size (1 = sequential)
fail_fast       : Stop a batch after its first failed item
log_level       : structlog level used by ``configure_logging``
log_format      : ``json`` | ``console`` (unset = auto-detect from tty)

Example::

    # SPINDLE_MAX_RETRIES=3 SPINDLE_RETRY_DELAY=0.5 python worker.py
    from spindle.core.settings import get_settings

    get_settings().max_retries   # -> 3
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpindleSettings(BaseSettings):
    """Settings read from ``SPINDLE_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="SPINDLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry ────────────────────────────────────────────────────
    max_retries: int = Field(default=1, ge=1)
    retry_delay: float = Field(default=0.0, ge=0.0)

    # ── Batch ────────────────────────────────────────────────────
    max_concurrency: int = Field(default=1, ge=1)
    fail_fast: bool = True

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: Literal["json", "console"] | None = None


@lru_cache(maxsize=1)
def get_settings() -> SpindleSettings:
    """Return the cached settings instance."""
    return SpindleSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


__all__ = ["SpindleSettings", "get_settings", "reset_settings"]
