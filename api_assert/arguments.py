"""Argument normalization for the per-verb call API.

Verb methods accept the legacy positional shapes

    verb(assertion, path)
    verb(assertion, path, callback)
    verb(assertion, path, expect)
    verb(assertion, path, request, callback)
    verb(assertion, path, request, expect)
    verb(assertion, path, request, expect, callback)

as well as the keyword form verb(assertion, path, request=..., expect=...,
callback=...). Both resolve to the same NormalizedCall.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError

from api_assert.errors import InvalidArgumentError
from api_assert.models import ExpectationSpec, RequestSpec

_MAX_EXTRA_ARGS = 3


@dataclass(frozen=True)
class NormalizedCall:
    """A verb call resolved to typed values."""

    assertion: Any
    path: str
    request: RequestSpec
    expect: ExpectationSpec
    callback: Callable[..., Any] | None


def normalize_call(
    assertion: Any,
    path: Any,
    args: tuple[Any, ...] = (),
    *,
    request: Any = None,
    expect: Any = None,
    callback: Any = None,
) -> NormalizedCall:
    """Resolve a verb call to (assertion, path, request, expect, callback).

    Raises:
        InvalidArgumentError: If the path is not a non-empty string, too many
            positionals were given, a slot was given twice, or a request or
            expectation does not validate.
    """
    if not isinstance(path, str) or not path:
        raise InvalidArgumentError(f"path must be a non-empty string, got {path!r}")

    if len(args) > _MAX_EXTRA_ARGS:
        raise InvalidArgumentError(
            f"expected at most {_MAX_EXTRA_ARGS} arguments after path, got {len(args)}"
        )

    pos_request, pos_expect, pos_callback = _split_positional(args)

    request = _pick("request", pos_request, request)
    expect = _pick("expect", pos_expect, expect)
    callback = _pick("callback", pos_callback, callback)

    if callback is not None and not callable(callback):
        raise InvalidArgumentError(f"callback must be callable, got {type(callback).__name__}")

    return NormalizedCall(
        assertion=assertion,
        path=path,
        request=_coerce(RequestSpec, request, "request"),
        expect=_coerce(ExpectationSpec, expect, "expect"),
        callback=callback,
    )


def _split_positional(args: tuple[Any, ...]) -> tuple[Any, Any, Any]:
    """Apply the legacy arity rules to the values following path."""
    if not args:
        return None, None, None
    if len(args) == 1:
        (only,) = args
        if callable(only):
            return None, None, only
        if isinstance(only, RequestSpec):
            return only, None, None
        return None, only, None
    if len(args) == 2:
        first, second = args
        if callable(second):
            return first, None, second
        return first, second, None
    return args[0], args[1], args[2]


def _pick(slot: str, positional: Any, keyword: Any) -> Any:
    if positional is not None and keyword is not None:
        raise InvalidArgumentError(f"{slot} given both positionally and by keyword")
    return keyword if keyword is not None else positional


def _coerce(model: type[BaseModel], value: Any, slot: str) -> Any:
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise InvalidArgumentError(
            f"{slot} must be a {model.__name__} or mapping, got {type(value).__name__}"
        )
    try:
        return model.model_validate(dict(value))
    except ValidationError as e:
        raise InvalidArgumentError(f"invalid {slot}: {e}") from e
