"""Tests for api_assert.aio.AsyncHttpClient using httpx.MockTransport."""

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from api_assert.aio import AsyncHttpClient
from api_assert.assertions import Expect
from api_assert.errors import InvalidArgumentError, RequestTimeoutError, TransportError
from tests.conftest import CapturingHandler, CloseTrackingTransport, json_responder, raising_responder


def make_client(handler: CapturingHandler, **options) -> AsyncHttpClient:
    options.setdefault("host", "x")
    options.setdefault("port", 80)
    return AsyncHttpClient(transport=httpx.MockTransport(handler), **options)


class TestAsyncClient:
    def test_invalid_path_raises_at_call_site(self):
        """Validation happens before a coroutine is even created."""
        with pytest.raises(InvalidArgumentError):
            make_client(CapturingHandler()).get(None, "")

    @pytest.mark.asyncio
    async def test_post_json_with_handle(self):
        handler = CapturingHandler(json_responder(201, {"id": 1, "name": "a"}))
        expect = Expect()

        outcome = await make_client(handler, base_path="/api").post(
            expect, "/items", {"data": {"name": "a"}}, {"status": 201}
        )

        expect.verify()
        assert outcome.data == {"id": 1, "name": "a"}
        assert handler.last.url.raw_path == b"/api/items"
        assert json.loads(handler.last.content) == {"name": "a"}

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self):
        handler = CapturingHandler(json_responder(200, {"ok": True}))
        seen = []

        async def callback(response, error=None):
            await asyncio.sleep(0)
            seen.append((response.status_code, error))

        await make_client(handler).get(None, "/x", callback=callback)

        assert seen == [(200, None)]

    @pytest.mark.asyncio
    async def test_sync_callback_on_assertion_failure(self):
        handler = CapturingHandler(json_responder(404, {}))
        callback = MagicMock()

        outcome = await make_client(handler).get(Expect(), "/x", {"status": 200}, callback=callback)

        response, error = callback.call_args.args
        assert response is outcome
        assert isinstance(error, AssertionError)

    @pytest.mark.asyncio
    async def test_transport_error_to_handle(self):
        handler = CapturingHandler(raising_responder(httpx.ConnectError, "refused"))
        expect = Expect()

        result = await make_client(handler).get(expect, "/x")

        assert result is None
        assert isinstance(expect.error, TransportError)

    @pytest.mark.asyncio
    async def test_timeout_raised_without_sink(self):
        handler = CapturingHandler(raising_responder(httpx.ReadTimeout, "slow"))
        with pytest.raises(RequestTimeoutError):
            await make_client(handler).get(None, "/x")

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self):
        """Each call gets its own outcome and terminal action."""
        handler = CapturingHandler(lambda request: httpx.Response(200, json={"path": request.url.path}))
        client = make_client(handler)
        handles = [Expect() for _ in range(5)]

        outcomes = await asyncio.gather(*(
            client.get(handle, f"/item/{i}", {"data": {"path": f"/item/{i}"}})
            for i, handle in enumerate(handles)
        ))

        assert [o.data["path"] for o in outcomes] == [f"/item/{i}" for i in range(5)]
        for handle in handles:
            handle.verify()

    @pytest.mark.asyncio
    async def test_injected_transport_left_open(self):
        transport = CloseTrackingTransport(CapturingHandler())
        client = AsyncHttpClient(host="x", port=80, transport=transport)

        await asyncio.gather(client.get(None, "/a"), client.get(None, "/b"))

        assert transport.closed is False
