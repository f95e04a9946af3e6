"""OpenAPI customizations.

Documents the throttling contract on the generated schema:
- Tags metadata for the route groups
- A shared ``TooManyRequests`` response component (body and headers)
- 429 operations point at that component instead of an inline stub

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "ISO-8601 UTC time at which the window resets.",
        "schema": {"type": "string", "format": "date-time"},
    },
    "Retry-After": {
        "description": "Seconds until the window resets.",
        "schema": {"type": "integer"},
    },
}

_TOO_MANY_REQUESTS: Dict[str, Any] = {
    "description": "Rate limit exceeded",
    "headers": _RATE_LIMIT_HEADERS,
    "content": {
        "application/json": {
            "schema": {
                "type": "object",
                "properties": {
                    "error": {"type": "string", "example": "Rate limit exceeded"},
                    "message": {
                        "type": "string",
                        "example": "Too many requests, please try again later.",
                    },
                    "retryAfter": {"type": "integer", "minimum": 0},
                    "code": {"type": "string", "example": "rate_limit_exceeded"},
                },
                "required": ["error", "message", "retryAfter"],
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with tags and the 429 contract."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        responses = components.setdefault("responses", {})
        responses.setdefault("TooManyRequests", _TOO_MANY_REQUESTS)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Rate Limits",
                "description": "Configured throttling policies.",
            },
            {
                "name": "Health",
                "description": "Liveness checks (not rate limited).",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method_obj in methods.values():
                if isinstance(method_obj, dict) and "429" in method_obj.get("responses", {}):
                    method_obj["responses"]["429"] = {"$ref": "#/components/responses/TooManyRequests"}

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
