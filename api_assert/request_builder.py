"""Request Builder - turns a normalized call into transport parameters.

Handles path and query construction, header merging with deletion overrides,
body serialization, Basic auth and timeout resolution. Nothing here touches
the network, so every error raised is synchronous.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import quote_from_bytes, urlencode

from api_assert.errors import InvalidArgumentError
from api_assert.models import ClientConfig, RequestSpec

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
BODYLESS_METHODS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS", "TRACE", "CONNECT"})

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class PreparedRequest:
    """Everything the transport needs to send one request."""

    method: str
    url: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None
    auth: tuple[str, str] | None = None
    timeout_s: float | None = None
    verify: bool = False


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters with '?'.

    HTTP header values must be ASCII per RFC 7230; sending them unchanged
    would fail inside the transport with an encoding error.
    """
    return value.encode("ascii", errors="replace").decode("ascii")


def build_request(
    config: ClientConfig,
    method: str,
    path: str,
    spec: RequestSpec,
) -> PreparedRequest:
    """Build the transport-level request for one call.

    Args:
        config: Client defaults.
        method: Upper-case HTTP method.
        path: Request path relative to config.base_path.
        spec: Per-call overrides.

    Returns:
        PreparedRequest ready to hand to httpx.

    Raises:
        InvalidArgumentError: If query data or a body has an unusable type.
    """
    full_path = config.base_path + path

    if method not in BODY_METHODS and spec.data is not None:
        full_path = append_query(full_path, spec.data)
    if spec.query is not None:
        full_path = append_query(full_path, spec.query)

    headers = merge_headers(config.default_headers, spec.headers)

    content: bytes | None = None
    if method in BODY_METHODS:
        content = encode_body(spec, headers)

    return PreparedRequest(
        method=method,
        url=config.origin + full_path,
        path=full_path,
        headers=headers,
        content=content,
        auth=resolve_auth(config, spec),
        timeout_s=resolve_timeout(config, spec),
        verify=config.verify_tls,
    )


def append_query(path: str, query: Any) -> str:
    """Append query data to path, joining with '?' or '&'.

    Mappings are URL-encoded (sequence values repeat the key); strings are
    appended verbatim; bytes are percent-encoded apart from query delimiters
    and existing escapes. Empty query data leaves the path unchanged.
    """
    if isinstance(query, Mapping):
        encoded = urlencode(query, doseq=True)
    elif isinstance(query, str):
        encoded = query.lstrip("?")
    elif isinstance(query, bytes):
        # Non-ASCII bytes are percent-encoded; query delimiters pass through.
        encoded = quote_from_bytes(query, safe="=&;+%/:,?").lstrip("?")
    else:
        raise InvalidArgumentError(
            f"query data must be a mapping or string, got {type(query).__name__}"
        )

    if not encoded:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{encoded}"


def merge_headers(
    defaults: Mapping[str, str],
    overrides: Mapping[str, str | None],
) -> dict[str, str]:
    """Merge per-call headers over defaults, case-insensitively.

    An override whose value is None removes the header entirely. The casing
    of the last writer is kept.
    """
    merged: dict[str, tuple[str, str]] = {}
    for name, value in defaults.items():
        merged[name.lower()] = (name, value)
    for name, value in overrides.items():
        if value is None:
            merged.pop(name.lower(), None)
        else:
            merged[name.lower()] = (name, value)
    return {name: _sanitize_header_value(value) for name, value in merged.values()}


def encode_body(spec: RequestSpec, headers: dict[str, str]) -> bytes | None:
    """Serialize the request body, updating headers in place.

    Mappings and lists become JSON; str is UTF-8 encoded; bytes pass through.
    A form, when given, is written last and wins over any other body.
    """
    body = spec.data if spec.data is not None else spec.body
    content: bytes | None = None

    if body is not None:
        if isinstance(body, (dict, list)):
            try:
                content = json.dumps(body).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise InvalidArgumentError(f"body is not JSON serializable: {e}") from e
            _set_default_header(headers, "Content-Type", JSON_CONTENT_TYPE)
        elif isinstance(body, str):
            content = body.encode("utf-8")
        elif isinstance(body, bytes):
            content = body
        else:
            raise InvalidArgumentError(f"unsupported body type: {type(body).__name__}")

    if spec.form is not None:
        if content is not None:
            logger.warning("Both a body and a form were supplied; sending the form")
        content = urlencode(spec.form, doseq=True).encode("ascii")
        _set_header(headers, "Content-Type", FORM_CONTENT_TYPE)

    if content is not None:
        _set_header(headers, "Content-Length", str(len(content)))
    return content


def resolve_auth(config: ClientConfig, spec: RequestSpec) -> tuple[str, str] | None:
    """Per-call auth wins over the client's; 'user:password' splits on the first ':'."""
    credentials = spec.auth if spec.auth is not None else config.auth
    if not credentials:
        return None
    username, _, password = credentials.partition(":")
    return username, password


def resolve_timeout(config: ClientConfig, spec: RequestSpec) -> float | None:
    """Resolve the deadline in seconds; 0 means no deadline (None)."""
    timeout_ms = spec.timeout_ms if spec.timeout_ms is not None else config.timeout_ms
    if timeout_ms <= 0:
        return None
    return timeout_ms / 1000.0


def _find_header(headers: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key in headers:
        if key.lower() == lowered:
            return key
    return None


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    existing = _find_header(headers, name)
    if existing is not None:
        del headers[existing]
    headers[name] = value


def _set_default_header(headers: dict[str, str], name: str, value: str) -> None:
    if _find_header(headers, name) is None:
        headers[name] = value
