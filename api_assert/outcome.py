"""Outcome sinks - the single terminal action of a call.

The sink is chosen once per call: an explicit callback wins, then an
assertion handle with a callable done(), otherwise errors are raised.
Each sink fires exactly once.
"""

from __future__ import annotations

from typing import Any, Callable

from api_assert.arguments import NormalizedCall
from api_assert.models import ResponseOutcome


class OutcomeSink:
    """Base sink. Subclasses implement _succeed and _fail."""

    def __init__(self) -> None:
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def succeed(self, response: ResponseOutcome) -> Any:
        self._mark_fired()
        return self._succeed(response)

    def fail(self, response: ResponseOutcome | None, error: BaseException) -> Any:
        self._mark_fired()
        return self._fail(response, error)

    def _mark_fired(self) -> None:
        if self._fired:
            raise RuntimeError(f"{type(self).__name__} already fired")
        self._fired = True

    def _succeed(self, response: ResponseOutcome) -> Any:
        raise NotImplementedError

    def _fail(self, response: ResponseOutcome | None, error: BaseException) -> Any:
        raise NotImplementedError


class CallbackSink(OutcomeSink):
    """callback(response) on success, callback(response, error) on failure."""

    def __init__(self, callback: Callable[..., Any]) -> None:
        super().__init__()
        self._callback = callback

    def _succeed(self, response: ResponseOutcome) -> Any:
        return self._callback(response)

    def _fail(self, response: ResponseOutcome | None, error: BaseException) -> Any:
        return self._callback(response, error)


class HandleSink(OutcomeSink):
    """Signals the assertion handle's done(), with the error on failure."""

    def __init__(self, handle: Any) -> None:
        super().__init__()
        self._handle = handle

    def _succeed(self, response: ResponseOutcome) -> Any:
        return self._handle.done()

    def _fail(self, response: ResponseOutcome | None, error: BaseException) -> Any:
        return self._handle.done(error)


class RaisingSink(OutcomeSink):
    """No handler at all: success is a no-op, failure raises."""

    def _succeed(self, response: ResponseOutcome) -> None:
        return None

    def _fail(self, response: ResponseOutcome | None, error: BaseException) -> None:
        raise error


def select_sink(call: NormalizedCall) -> OutcomeSink:
    if call.callback is not None:
        return CallbackSink(call.callback)
    if call.assertion is not None and callable(getattr(call.assertion, "done", None)):
        return HandleSink(call.assertion)
    return RaisingSink()
