"""Exception hierarchy for api-assert.

Validation problems raise synchronously. Transport problems are mapped from
httpx exceptions into TransportError subclasses that carry the request
context (method, URL, headers) so a failing test shows what was sent.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from api_assert.request_builder import PreparedRequest


_MASKED_HEADERS = {"authorization", "proxy-authorization"}


class ApiAssertError(Exception):
    """Base class for api-assert errors."""


class InvalidArgumentError(ApiAssertError, TypeError):
    """Raised when a verb method is called with an unusable argument shape."""


class ConfigError(ApiAssertError):
    """Raised when client configuration loading fails."""


class JsonParseError(ApiAssertError, ValueError):
    """A JSON response body that could not be decoded.

    Never raised to the caller. Stored on ResponseOutcome.parse_error.
    """


class ErrorKind(str, Enum):
    """Category of a transport failure."""

    CONNECT = "connect"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PROTOCOL = "protocol"
    ENCODING = "encoding"
    REQUEST = "request"


class TransportError(ApiAssertError):
    """Raised when a request fails before a complete response is read."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.REQUEST,
        method: str | None = None,
        url: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.method = method
        self.url = url
        self.headers = mask_headers(headers or {})

    def __str__(self) -> str:
        message = super().__str__()
        if self.method and self.url:
            return f"{message} ({self.method} {self.url})"
        return message


class RequestTimeoutError(TransportError):
    """Raised when the resolved deadline elapses; the request is aborted."""

    def __init__(self, message: str, **context) -> None:
        context["kind"] = ErrorKind.TIMEOUT
        super().__init__(message, **context)


def mask_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy headers with credential values replaced by '***'."""
    return {
        name: "***" if name.lower() in _MASKED_HEADERS else value
        for name, value in headers.items()
    }


def transport_error_from(exc: Exception, prepared: PreparedRequest) -> TransportError:
    """Map an httpx (or encoding) exception to a TransportError with request context."""
    error = _classify(exc, prepared)
    error.__cause__ = exc
    return error


def _classify(exc: Exception, prepared: PreparedRequest) -> TransportError:
    context = {
        "method": prepared.method,
        "url": prepared.url,
        "headers": prepared.headers,
    }

    if isinstance(exc, httpx.TimeoutException):
        timeout = prepared.timeout_s
        return RequestTimeoutError(f"request timed out after {timeout}s: {exc}", **context)
    if isinstance(exc, httpx.ConnectError):
        return TransportError(f"connection error: {exc}", kind=ErrorKind.CONNECT, **context)
    if isinstance(exc, httpx.NetworkError):
        return TransportError(f"network error: {exc}", kind=ErrorKind.NETWORK, **context)
    if isinstance(exc, httpx.ProtocolError):
        return TransportError(f"protocol error: {exc}", kind=ErrorKind.PROTOCOL, **context)
    if isinstance(exc, UnicodeEncodeError):
        # Header keys, query strings and paths must be ASCII on the wire.
        return TransportError(
            f"encoding error: non-ASCII character {exc.object[exc.start:exc.end]!r} "
            f"at position {exc.start}",
            kind=ErrorKind.ENCODING,
            **context,
        )
    return TransportError(f"request error: {exc}", kind=ErrorKind.REQUEST, **context)
