"""Minimal JSON-over-HTTP helper used by the OAuth and YouTube clients."""
from __future__ import annotations

import asyncio
import json
import socket
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional
from urllib import error, parse, request

from . import __version__
from .errors import NetworkError, ProviderError
from .logging_utils import get_logger

log = get_logger(__name__)

DEFAULT_TIMEOUT = 15.0
USER_AGENT = f"tubedeck-tui/{__version__}"


@dataclass(slots=True)
class HttpResponse:
    """Status code and decoded JSON body of a completed request."""

    status: int
    payload: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def field(self, name: str) -> Any:
        if isinstance(self.payload, dict):
            return self.payload.get(name)
        return None


Transport = Callable[..., Awaitable[HttpResponse]]


def _decode(raw: bytes, url: str, status: int) -> Any:
    if not raw.strip():
        return {}
    try:
        return json.loads(raw.decode("utf8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProviderError(
            f"Unexpected non-JSON response from {url} (HTTP {status})",
            status=status,
        ) from exc


def _perform(
    url: str,
    data: Optional[Mapping[str, str]],
    headers: Mapping[str, str],
    timeout: float,
) -> HttpResponse:
    body = parse.urlencode(data).encode("ascii") if data is not None else None
    req = request.Request(url, data=body, method="POST" if body is not None else "GET")
    req.add_header("User-Agent", USER_AGENT)
    req.add_header("Accept", "application/json")
    for key, value in headers.items():
        req.add_header(key, value)
    try:
        with request.urlopen(req, timeout=timeout) as response:  # type: ignore[call-arg]
            status = response.status
            raw = response.read()
    except error.HTTPError as exc:
        status = exc.code
        raw = exc.read() or b""
    except (error.URLError, socket.timeout, TimeoutError, ConnectionError) as exc:
        reason = getattr(exc, "reason", exc)
        raise NetworkError(f"Network request to {url} failed: {reason}") from exc
    log.debug("HTTP %s %s -> %s (%d bytes)", req.get_method(), url, status, len(raw))
    if status >= 500:
        raise NetworkError(f"Server error from {url}: HTTP {status}")
    return HttpResponse(status=status, payload=_decode(raw, url, status))


async def request_json(
    url: str,
    *,
    data: Optional[Mapping[str, str]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> HttpResponse:
    """Issue a GET (or a form POST when *data* is given) off the event loop.

    4xx responses are returned rather than raised so callers can inspect
    OAuth error codes. Transport failures and 5xx responses raise
    :class:`NetworkError`, which callers treat as retryable.
    """

    return await asyncio.to_thread(_perform, url, data, dict(headers or {}), timeout)


def error_details(response: HttpResponse) -> tuple[Optional[str], str]:
    """Return ``(code, description)`` from an OAuth or Google API error body."""

    payload = response.payload
    if not isinstance(payload, dict):
        return None, f"HTTP {response.status}"
    raw_error = payload.get("error")
    if isinstance(raw_error, str):
        description = payload.get("error_description")
        return raw_error, str(description) if description else raw_error
    if isinstance(raw_error, dict):
        message = raw_error.get("message")
        code = raw_error.get("status")
        errors = raw_error.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            code = errors[0].get("reason") or code
        return (
            str(code) if code else None,
            str(message) if message else f"HTTP {response.status}",
        )
    return None, f"HTTP {response.status}"


__all__ = [
    "DEFAULT_TIMEOUT",
    "HttpResponse",
    "Transport",
    "error_details",
    "request_json",
]
