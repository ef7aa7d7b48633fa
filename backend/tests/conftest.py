"""Shared test fixtures and configuration."""
import os

import pytest

# Modules that read settings lazily still need a backend URL to validate
os.environ.setdefault("API_BASE_URL", "http://api.test")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")

from academico.config import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def anyio_backend():
    # session refreshes are asyncio tasks
    return "asyncio"
