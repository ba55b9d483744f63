"""Request Executor - one request, one buffered response, one terminal action.

Usage:
    client = HttpClient(host="localhost", port=8000, base_path="/api")

    # Assertion handle: checks run, then expect.done() fires.
    expect = Expect()
    client.post(expect, "/items", {"data": {"name": "a"}}, {"status": 201})
    expect.verify()

    # Callback: receives the ResponseOutcome (and an error on failure).
    client.get(None, "/users", lambda response, error=None: ...)

    # Neither: the outcome is returned and errors are raised.
    outcome = client.get(None, "/users")

Each call opens and closes its own httpx client and connection. Nothing is
pooled or shared between calls except the frozen ClientConfig, and an
injected transport, which stays open for its owner to close.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

import httpx
from pydantic import ValidationError

from api_assert.arguments import NormalizedCall, normalize_call
from api_assert.assertions import check_response
from api_assert.collector import collect_response
from api_assert.errors import InvalidArgumentError, TransportError, transport_error_from
from api_assert.models import ClientConfig, ResponseOutcome
from api_assert.outcome import OutcomeSink, select_sink
from api_assert.request_builder import PreparedRequest, build_request

logger = logging.getLogger(__name__)

# Exceptions from the transport that become TransportError. InvalidURL is
# raised by httpx while building the request, before any connection.
TRANSPORT_EXCEPTIONS = (httpx.RequestError, httpx.InvalidURL, UnicodeEncodeError)


class _BorrowedTransport(httpx.BaseTransport, httpx.AsyncBaseTransport):
    """Forwards to a caller-owned transport; close() and aclose() are no-ops.

    A per-call httpx client closes its transport on exit. An injected transport
    is shared by every call and stays open until its owner closes it.
    """

    def __init__(self, transport: httpx.BaseTransport | httpx.AsyncBaseTransport) -> None:
        self._transport = transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._transport.handle_request(request)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._transport.handle_async_request(request)

    def close(self) -> None:
        pass

    async def aclose(self) -> None:
        pass


class BaseHttpClient:
    """Configuration plus the transport-independent parts of a call."""

    def __init__(
        self,
        config: ClientConfig | Mapping[str, Any] | None = None,
        *,
        transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None,
        **options: Any,
    ) -> None:
        """Initialize the client.

        Args:
            config: A ClientConfig or mapping of its fields.
            transport: httpx transport to send through (e.g. httpx.MockTransport).
                Defaults to httpx's own HTTP transport. An injected transport
                is shared by all calls and never closed by this client.
            **options: ClientConfig fields, as an alternative to `config`.

        Raises:
            InvalidArgumentError: If both config and options are given, or
                the configuration does not validate.
        """
        if config is not None and options:
            raise InvalidArgumentError("pass either a config or keyword options, not both")
        if config is None:
            config = options
        try:
            self._config = (
                config if isinstance(config, ClientConfig) else ClientConfig.model_validate(dict(config))
            )
        except ValidationError as e:
            raise InvalidArgumentError(f"invalid client configuration: {e}") from e
        self._transport = transport

    @classmethod
    def create(cls, config: ClientConfig | Mapping[str, Any] | None = None, **kwargs: Any):
        return cls(config, **kwargs)

    @property
    def config(self) -> ClientConfig:
        return self._config

    def _prepare(
        self,
        method: str,
        assertion: Any,
        path: Any,
        args: tuple[Any, ...],
        request: Any,
        expect: Any,
        callback: Any,
    ) -> tuple[NormalizedCall, PreparedRequest, OutcomeSink]:
        """Validate the call and build the request. Raises before any I/O."""
        call = normalize_call(
            assertion, path, args, request=request, expect=expect, callback=callback
        )
        prepared = build_request(self._config, method.upper(), call.path, call.request)
        return call, prepared, select_sink(call)

    def _client_kwargs(self, prepared: PreparedRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "verify": prepared.verify,
            "timeout": httpx.Timeout(prepared.timeout_s),
            "follow_redirects": False,
            # Proxies from the environment are out of scope.
            "trust_env": False,
        }
        if self._transport is not None:
            kwargs["transport"] = _BorrowedTransport(self._transport)
        return kwargs

    def _finish(self, call: NormalizedCall, sink: OutcomeSink, outcome: ResponseOutcome) -> Any:
        """Run assertions when a handle was given, then fire the sink."""
        logger.debug(
            "%s %s -> %d (%.1f ms)",
            outcome.method, outcome.url, outcome.status_code, outcome.elapsed_ms,
        )
        if call.assertion is not None:
            try:
                check_response(call.assertion, outcome, call.expect, self._config)
            except AssertionError as e:
                return sink.fail(outcome, e)
        return sink.succeed(outcome)

    def _transport_failed(
        self,
        sink: OutcomeSink,
        prepared: PreparedRequest,
        exc: Exception,
    ) -> Any:
        error = transport_error_from(exc, prepared)
        self._log_transport_error(error)
        return sink.fail(None, error)

    def _log_transport_error(self, error: TransportError) -> None:
        level = logging.ERROR if self._config.debug else logging.DEBUG
        logger.log(
            level,
            "HTTP request error: %s (kind=%s, method=%s, url=%s, headers=%s)",
            error, error.kind.value, error.method, error.url, error.headers,
        )


class VerbMethodsMixin:
    """One method per HTTP verb, all delegating to send()."""

    send: Callable[..., Any]

    def get(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("GET", assertion, path, *args, request=request, expect=expect, callback=callback)

    def post(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("POST", assertion, path, *args, request=request, expect=expect, callback=callback)

    def put(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("PUT", assertion, path, *args, request=request, expect=expect, callback=callback)

    def patch(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("PATCH", assertion, path, *args, request=request, expect=expect, callback=callback)

    def delete(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("DELETE", assertion, path, *args, request=request, expect=expect, callback=callback)

    def head(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("HEAD", assertion, path, *args, request=request, expect=expect, callback=callback)

    def options(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("OPTIONS", assertion, path, *args, request=request, expect=expect, callback=callback)

    def trace(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("TRACE", assertion, path, *args, request=request, expect=expect, callback=callback)

    def connect(self, assertion, path, *args, request=None, expect=None, callback=None):
        return self.send("CONNECT", assertion, path, *args, request=request, expect=expect, callback=callback)


class HttpClient(VerbMethodsMixin, BaseHttpClient):
    """Blocking client built on httpx.Client."""

    def send(
        self,
        method: str,
        assertion: Any,
        path: Any,
        *args: Any,
        request: Any = None,
        expect: Any = None,
        callback: Any = None,
    ) -> ResponseOutcome | None:
        """Send one request and fire its terminal action.

        Returns:
            The ResponseOutcome, or None when a transport error was routed to
            a callback or assertion handle.

        Raises:
            InvalidArgumentError: Bad call shape (before any I/O).
            TransportError: No callback or handle to route a transport error to.
            AssertionError: An expectation failed and the handle has no done().
        """
        call, prepared, sink = self._prepare(method, assertion, path, args, request, expect, callback)
        logger.debug("Sending %s %s", prepared.method, prepared.url)

        start_time = time.perf_counter()
        try:
            with httpx.Client(**self._client_kwargs(prepared)) as client:
                with client.stream(
                    prepared.method,
                    prepared.url,
                    headers=prepared.headers,
                    content=prepared.content,
                    auth=prepared.auth,
                ) as response:
                    chunks = list(response.iter_bytes())
                    status_code = response.status_code
                    headers = response.headers
        except TRANSPORT_EXCEPTIONS as e:
            self._transport_failed(sink, prepared, e)
            return None
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        outcome = collect_response(
            prepared.method, prepared.url, status_code, headers, chunks, elapsed_ms
        )
        self._finish(call, sink, outcome)
        return outcome
