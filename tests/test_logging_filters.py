"""Tests for sensitive data filtering and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO
from unittest.mock import Mock

import pytest

from apiguard.adapters.rate_limit.base import RateLimitConfig
from apiguard.adapters.rate_limit.in_memory import InMemoryRateLimiter
from apiguard.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)
from apiguard.core.rate_limit import create_rate_limit


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def test_redacts_secrets_and_client_addresses():
    logger, stream = _capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "client_ip": "203.0.113.5",
            "x-forwarded-for": "203.0.113.5, 10.0.0.1",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "203.0.113.5" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_redacts_nested_dicts():
    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {"Authorization": "Bearer abc", "user-agent": "pytest"},
            "safe_data": {"count": 5},
        },
    )

    record = _records(stream)[0]
    assert record["headers"]["Authorization"] == "[REDACTED]"
    assert record["headers"]["user-agent"] == "pytest"
    assert record["safe_data"] == {"count": 5}


def test_request_id_from_context_is_attached():
    logger, stream = _capture("test_request_id")

    set_request_id("req-123")
    try:
        logger.warning("with_context")
    finally:
        clear_request_id()
    logger.warning("without_context")

    first, second = _records(stream)
    assert first["request_id"] == "req-123"
    assert "request_id" not in second


@pytest.fixture
def rate_limit_logs():
    logger, stream = _capture("apiguard.core.rate_limit")
    yield stream
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def test_exceeded_event_logs_hashed_key_only(rate_limit_logs, make_request):
    limiter = InMemoryRateLimiter(clock=Mock(return_value=1000.0), start_cleanup=False)
    rate_limit = create_rate_limit(RateLimitConfig(window_ms=60_000, max_requests=1), limiter, name="auth")
    request = make_request(headers={"x-forwarded-for": "198.51.100.77"})

    rate_limit(request)
    rate_limit(request)

    records = _records(rate_limit_logs)
    assert [r["message"] for r in records] == ["rate_limit.allowed", "rate_limit.exceeded"]
    exceeded = records[1]
    assert exceeded["level"] == "warning"
    assert exceeded["limiter"] == "auth"
    assert exceeded["used"] == 1
    assert len(exceeded["key_hash"]) == 16
    assert "198.51.100.77" not in rate_limit_logs.getvalue()
