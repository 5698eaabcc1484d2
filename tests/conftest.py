"""
Shared pytest fixtures and configuration for spindle tests.

This module provides:
- Settings cache reset for test isolation
- A mock structured logger for asserting on diagnostic events
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure spindle package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spindle.core.settings import reset_settings


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Re-read settings for every test, without SPINDLE_* leaking in."""
    for key in [
        "SPINDLE_MAX_RETRIES",
        "SPINDLE_RETRY_DELAY",
        "SPINDLE_MAX_CONCURRENCY",
        "SPINDLE_FAIL_FAST",
        "SPINDLE_LOG_LEVEL",
        "SPINDLE_LOG_FORMAT",
    ]:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def mock_logger():
    """A logger double; inspect ``events(mock_logger.warning)`` for event names."""
    return MagicMock()


@pytest.fixture
def events():
    """Return a helper listing event names passed to a mocked logger method."""

    def _events(method: MagicMock) -> list[str]:
        return [call.args[0] for call in method.call_args_list]

    return _events
