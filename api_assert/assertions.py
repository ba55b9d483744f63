"""Assertion Engine - checks a ResponseOutcome against expectations.

Checks run through an AssertionHandle, so any test framework can plug in by
providing equal/deep_equal/done. Checking is fail-fast: the first
AssertionError propagates and later checks do not run.

Order:
    1. status code (call expectation, else ClientConfig.default_status)
    2. headers (ClientConfig.expected_headers merged with the call's)
    3. exact body text
    4. decoded JSON data
    5. ok (2xx)
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from api_assert.models import ClientConfig, ExpectationSpec, ResponseOutcome


@runtime_checkable
class AssertionHandle(Protocol):
    """What a test framework adapter provides."""

    def equal(self, actual: Any, expected: Any, message: str | None = None) -> None: ...

    def deep_equal(self, actual: Any, expected: Any, message: str | None = None) -> None: ...

    def done(self, error: BaseException | None = None) -> None: ...


class Expect:
    """Bundled AssertionHandle that raises AssertionError on mismatch.

    done() records completion instead of raising, so the outcome of a call
    routed to this handle is inspected afterwards:

        expect = Expect()
        client.get(expect, "/health", {"status": 200})
        expect.verify()
    """

    def __init__(self) -> None:
        self.finished = False
        self.error: BaseException | None = None

    def equal(self, actual: Any, expected: Any, message: str | None = None) -> None:
        if actual != expected:
            raise AssertionError(message or f"{actual!r} != {expected!r}")

    def deep_equal(self, actual: Any, expected: Any, message: str | None = None) -> None:
        # Python equality is already structural for JSON values.
        if actual != expected:
            raise AssertionError(message or f"{actual!r} != {expected!r} (deep)")

    def done(self, error: BaseException | None = None) -> None:
        if self.finished:
            raise RuntimeError("done() called more than once")
        self.finished = True
        self.error = error

    def verify(self) -> None:
        """Raise the recorded error, or fail if done() was never called."""
        if not self.finished:
            raise AssertionError("request finished without signalling done()")
        if self.error is not None:
            raise self.error


def merged_expected_headers(config: ClientConfig, expect: ExpectationSpec) -> dict[str, str]:
    """Client-level expected headers overlaid by the call's, keyed lowercase."""
    merged = {name.lower(): value for name, value in config.expected_headers.items()}
    merged.update({name.lower(): value for name, value in expect.headers.items()})
    return merged


def check_response(
    handle: AssertionHandle,
    outcome: ResponseOutcome,
    expect: ExpectationSpec,
    config: ClientConfig,
) -> None:
    """Run the expectation checks in order through the handle.

    Raises:
        AssertionError: From the handle, on the first failing check.
    """
    expected_status = expect.status if expect.status is not None else config.default_status
    if expected_status is not None:
        handle.equal(
            outcome.status_code,
            expected_status,
            f"status code: expected {expected_status}, got {outcome.status_code}",
        )

    for name, expected_value in merged_expected_headers(config, expect).items():
        actual_value = outcome.header(name)
        handle.equal(
            actual_value,
            expected_value,
            f"header {name!r}: expected {expected_value!r}, got {actual_value!r}",
        )

    if expect.expects_body:
        handle.equal(
            outcome.body,
            expect.body,
            f"body: expected {expect.body!r}, got {outcome.body!r}",
        )

    if expect.expects_data:
        handle.deep_equal(
            outcome.data,
            expect.data,
            f"data: expected {expect.data!r}, got {outcome.data!r}",
        )

    if expect.ok is not None:
        handle.equal(
            outcome.ok,
            expect.ok,
            f"ok: expected {expect.ok}, got {outcome.ok} (status {outcome.status_code})",
        )
