"""Asynchronous Request Executor built on httpx.AsyncClient.

Same call shapes and terminal-action rules as HttpClient. Verb methods
validate their arguments immediately, so a bad call raises
InvalidArgumentError at the call site, and return a coroutine that performs
the request:

    client = AsyncHttpClient(host="localhost", port=8000)
    outcome = await client.get(None, "/users")

Many calls may be awaited concurrently; each uses its own connection.
Callbacks and done() may be plain functions or coroutine functions.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Coroutine

import httpx

from api_assert.arguments import NormalizedCall
from api_assert.client import TRANSPORT_EXCEPTIONS, BaseHttpClient, VerbMethodsMixin
from api_assert.collector import collect_response
from api_assert.models import ResponseOutcome
from api_assert.outcome import OutcomeSink
from api_assert.request_builder import PreparedRequest

logger = logging.getLogger(__name__)


class AsyncHttpClient(VerbMethodsMixin, BaseHttpClient):
    """Non-blocking client; verb methods return coroutines."""

    def send(
        self,
        method: str,
        assertion: Any,
        path: Any,
        *args: Any,
        request: Any = None,
        expect: Any = None,
        callback: Any = None,
    ) -> Coroutine[Any, Any, ResponseOutcome | None]:
        call, prepared, sink = self._prepare(method, assertion, path, args, request, expect, callback)
        return self._send(call, prepared, sink)

    async def _send(
        self,
        call: NormalizedCall,
        prepared: PreparedRequest,
        sink: OutcomeSink,
    ) -> ResponseOutcome | None:
        logger.debug("Sending %s %s", prepared.method, prepared.url)

        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(**self._client_kwargs(prepared)) as client:
                async with client.stream(
                    prepared.method,
                    prepared.url,
                    headers=prepared.headers,
                    content=prepared.content,
                    auth=prepared.auth,
                ) as response:
                    chunks = [chunk async for chunk in response.aiter_bytes()]
                    status_code = response.status_code
                    headers = response.headers
        except TRANSPORT_EXCEPTIONS as e:
            await _resolve(self._transport_failed(sink, prepared, e))
            return None
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        outcome = collect_response(
            prepared.method, prepared.url, status_code, headers, chunks, elapsed_ms
        )
        await _resolve(self._finish(call, sink, outcome))
        return outcome


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
