"""Pytest configuration and shared fixtures."""

import pytest

from event_chain import EventChain, reset_event_chain
from event_chain.logging_config import configure_logging


def pytest_configure(config):
    """Configure pytest markers and quiet logging."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    configure_logging(level="WARNING", colors=False)


@pytest.fixture
def bus():
    return EventChain(name="test")


@pytest.fixture(autouse=True)
def _fresh_default_bus():
    reset_event_chain()
    yield
    reset_event_chain()
