"""Response Collector - buffers a streamed response into a ResponseOutcome."""

from __future__ import annotations

import json
from typing import Any, Iterable

import httpx

from api_assert.errors import JsonParseError
from api_assert.models import ResponseOutcome


def decode_body(chunks: Iterable[bytes]) -> str:
    """Join chunks in arrival order and decode as UTF-8.

    Decoding happens once on the joined bytes so multi-byte characters split
    across chunk boundaries survive. Invalid sequences become U+FFFD.
    """
    return b"".join(chunks).decode("utf-8", errors="replace")


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or (
        media_type.startswith("application/") and media_type.endswith("+json")
    )


def parse_json_body(content_type: str, text: str) -> tuple[Any, JsonParseError | None, bool]:
    """Try to decode a JSON body.

    Returns:
        (data, error, attempted). `attempted` is False when the content type
        is not JSON or the body is empty; `error` is set when decoding failed.
        Never raises.
    """
    if not text or not is_json_content_type(content_type):
        return None, None, False
    try:
        return json.loads(text), None, True
    except (ValueError, RecursionError) as e:
        # Oversized integers raise ValueError, deep nesting RecursionError.
        return None, JsonParseError(f"invalid JSON body: {e}"), True


def flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    """Lowercase header names; repeated headers are joined with ', '."""
    flattened: dict[str, str] = {}
    for key, value in headers.multi_items():
        key_lower = key.lower()
        if key_lower in flattened:
            flattened[key_lower] = f"{flattened[key_lower]}, {value}"
        else:
            flattened[key_lower] = value
    return flattened


def collect_response(
    method: str,
    url: str,
    status_code: int,
    headers: httpx.Headers,
    chunks: Iterable[bytes],
    elapsed_ms: float,
) -> ResponseOutcome:
    """Build the ResponseOutcome for a fully read response."""
    flat_headers = flatten_headers(headers)
    body = decode_body(chunks)
    data, parse_error, attempted = parse_json_body(flat_headers.get("content-type", ""), body)

    fields: dict[str, Any] = {
        "method": method,
        "url": url,
        "status_code": status_code,
        "headers": flat_headers,
        "body": body,
        "elapsed_ms": elapsed_ms,
    }
    if parse_error is not None:
        fields["parse_error"] = parse_error
    elif attempted:
        fields["data"] = data
    return ResponseOutcome(**fields)
