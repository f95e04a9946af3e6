"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any ``apiguard`` import so the settings
object is built from them rather than from a developer's .env file.
"""

import os
from dataclasses import dataclass, field
from unittest.mock import Mock

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@dataclass
class FakeRequest:
    """Minimal ``RequestLike`` double."""

    path: str = "/test"
    headers: dict[str, str] = field(default_factory=dict)
    client_host: str | None = "127.0.0.1"

    def get_header(self, name: str) -> str | None:
        return {k.lower(): v for k, v in self.headers.items()}.get(name.lower())


@pytest.fixture
def clock() -> Mock:
    """Controllable time source returning UNIX seconds."""
    return Mock(return_value=1000.0)


@pytest.fixture
def make_request():
    """Factory for ``FakeRequest`` objects."""
    return FakeRequest
