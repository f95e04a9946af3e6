"""Pydantic schemas for rate limit responses."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RateLimitErrorBody(BaseModel):
    """JSON body returned with HTTP 429."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(
        "Rate limit exceeded",
        description="Short error title.",
    )
    message: str = Field(
        "Too many requests, please try again later.",
        description="Human-readable explanation.",
    )
    retry_after: int = Field(
        ...,
        alias="retryAfter",
        ge=0,
        description="Seconds until the current window resets.",
    )
    # Same machine-readable code the API error handler uses for 429s, so clients
    # can branch on it without parsing the message.
    code: str = Field(
        "rate_limit_exceeded",
        description="Stable, machine-readable error code.",
    )


class RateLimitPolicyInfo(BaseModel):
    """Public description of a named limiter."""

    name: str = Field(..., description="Category name, also the key prefix.")
    window_ms: int = Field(..., description="Window duration in milliseconds.")
    max_requests: int = Field(..., description="Requests allowed per window.")


class RateLimitPoliciesResponse(BaseModel):
    """Configured limiters and whether enforcement is on."""

    enabled: bool = Field(..., description="Whether decorated routes are throttled.")
    policies: List[RateLimitPolicyInfo] = Field(default_factory=list)
