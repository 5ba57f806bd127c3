"""Pytest configuration and fixtures."""

import os

import pytest

# Loggers read settings at import time, so the environment must be in place
# before test modules import the app.
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("DRAFT_ENGINE_ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["DRAFT_ENGINE_ENV"] = "test"
    os.environ["PER_SECTION_PREFILTER"] = "false"


@pytest.fixture
def small_outline():
    """Three-section outline: 9, 9.1, 10."""
    from app.core.outline import SectionOutline

    return SectionOutline.from_dicts(
        [
            {
                "id": "9",
                "title": "Investigational Plan",
                "children": [{"id": "9.1", "title": "Overall Study Design"}],
            },
            {"id": "10", "title": "Study Patients"},
        ]
    )


@pytest.fixture
def sleeps():
    """Recording replacement for asyncio.sleep."""
    recorded: list[float] = []

    async def _sleep(delay: float) -> None:
        recorded.append(delay)

    _sleep.recorded = recorded
    return _sleep
