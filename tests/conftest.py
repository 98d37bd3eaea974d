"""
Pytest configuration and shared fixtures for relaycover tests.

Provides:
- Event builders and the scripted ``FakeRelayPool`` (``tests/fixtures/events.py``)
- Logging configuration
- Custom pytest markers for test categorization
"""

import logging

import pytest


pytest_plugins = ["fixtures.events"]


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (no external dependencies)")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test under ``tests/unit`` as a unit test."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
