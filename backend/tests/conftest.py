"""
Pytest configuration and fixtures for GraphGate backend tests.
"""

import pytest

from graphgate.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that set env vars need a fresh read"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
