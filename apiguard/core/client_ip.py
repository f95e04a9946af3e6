"""Client address extraction and default rate limit keys.

The limiter only needs two things from a request: header lookup and the path.
``RequestLike`` captures that surface so key derivation works for Starlette
requests, test doubles, or any other transport.

The forwarded-for chain is client-controlled input. It is good enough for
coarse throttling and must not be used for authorization decisions.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


@runtime_checkable
class RequestLike(Protocol):
    """Minimal request surface used for key derivation."""

    @property
    def path(self) -> str: ...

    @property
    def client_host(self) -> str | None: ...

    def get_header(self, name: str) -> str | None: ...


class StarletteRequestAdapter:
    """Expose a Starlette/FastAPI ``Request`` as ``RequestLike``."""

    def __init__(self, request: Request) -> None:
        self._request = request

    @property
    def request(self) -> Request:
        return self._request

    @property
    def path(self) -> str:
        return self._request.url.path

    @property
    def client_host(self) -> str | None:
        client = self._request.client
        return client.host if client else None

    def get_header(self, name: str) -> str | None:
        return self._request.headers.get(name)


def as_request_like(request: Request | RequestLike) -> RequestLike:
    """Wrap Starlette requests; pass ``RequestLike`` objects through."""

    if isinstance(request, Request):
        return StarletteRequestAdapter(request)
    return request


def get_client_ip(request: RequestLike) -> str:
    """Best-effort originating client address.

    Checks, in order: the first entry of ``x-forwarded-for``, ``x-real-ip``,
    then the transport peer address.

    Args:
        request: Request exposing header lookup.

    Returns:
        Client address, or ``"unknown"`` when none is available.

    Examples:
        A request with ``x-forwarded-for: "1.2.3.4, 5.6.7.8"`` yields
        ``"1.2.3.4"``; one with only ``x-real-ip: "9.9.9.9"`` yields
        ``"9.9.9.9"``.
    """

    forwarded = request.get_header("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (request.get_header("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return getattr(request, "client_host", None) or UNKNOWN_CLIENT


def get_default_key(request: RequestLike) -> str:
    """Default bucket key: ``"<clientIP>:<path>"``."""

    return f"{get_client_ip(request)}:{request.path}"
