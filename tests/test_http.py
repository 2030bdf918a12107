"""ResilientFetcher: ретраи, линейный backoff, потолок попыток."""

import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from stablelens.utils.http import (
    FetchError,
    FetchResponse,
    MalformedPayloadError,
    ResilientFetcher,
    UpstreamStatusError,
)


def response(status: int, body: bytes = b"{}") -> FetchResponse:
    return FetchResponse(url="https://upstream.test/data", status=status, body=body)


class TestRetries:
    async def test_first_success_makes_single_attempt(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(200, b'{"ok": true}'))

        data = await fetcher.fetch_json("https://upstream.test/data")

        assert data == {"ok": True}
        assert fetcher._attempt.await_count == 1
        fetcher._sleep.assert_not_awaited()

    async def test_gives_up_after_attempt_ceiling(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(500))

        with pytest.raises(UpstreamStatusError) as exc_info:
            await fetcher.fetch("https://upstream.test/data")

        assert exc_info.value.status == 500
        assert fetcher._attempt.await_count == 3

    async def test_backoff_is_linear_and_only_between_attempts(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(503))

        with pytest.raises(UpstreamStatusError):
            await fetcher.fetch("https://upstream.test/data")

        delays = [call.args[0] for call in fetcher._sleep.await_args_list]
        assert delays == [0.5, 1.0]

    async def test_recovers_after_timeout_and_network_error(self, fetcher):
        fetcher._attempt = AsyncMock(
            side_effect=[asyncio.TimeoutError(), aiohttp.ClientConnectionError("reset"), response(200)]
        )

        result = await fetcher.fetch("https://upstream.test/data")

        assert result.ok
        assert fetcher._attempt.await_count == 3

    async def test_network_errors_surface_as_fetch_error(self, fetcher):
        fetcher._attempt = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(FetchError):
            await fetcher.fetch("https://upstream.test/data")

    async def test_per_call_attempt_override(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(502))

        with pytest.raises(UpstreamStatusError):
            await fetcher.fetch("https://upstream.test/data", attempts=1)

        assert fetcher._attempt.await_count == 1
        fetcher._sleep.assert_not_awaited()


class TestPayload:
    async def test_invalid_json_is_malformed_payload(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(200, b"<html>maintenance</html>"))

        with pytest.raises(MalformedPayloadError):
            await fetcher.fetch_json("https://upstream.test/data")

    async def test_fetch_text_decodes_body(self, fetcher):
        fetcher._attempt = AsyncMock(return_value=response(200, "DATE,VALUE\n".encode()))

        assert await fetcher.fetch_text("https://upstream.test/data") == "DATE,VALUE\n"


async def serve(handler) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_get("/data", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


@pytest.fixture
async def live_fetcher():
    fetcher = ResilientFetcher(
        request_timeout=0.2,
        attempts=3,
        backoff_base_ms=0,
        user_agent="stablelens-tests",
        sleep=AsyncMock(),
    )
    yield fetcher
    await fetcher.close()


class TestAgainstLocalServer:
    async def test_timed_out_attempt_is_retried(self, live_fetcher):
        calls = []

        async def handler(request):
            calls.append(request.headers.get("User-Agent"))
            if len(calls) == 1:
                await asyncio.sleep(0.5)
            return web.json_response({"ok": True})

        server = await serve(handler)
        try:
            data = await live_fetcher.fetch_json(str(server.make_url("/data")))
        finally:
            await server.close()

        assert data == {"ok": True}
        assert len(calls) == 2
        assert calls[0] == "stablelens-tests"
        live_fetcher._sleep.assert_awaited_once()

    async def test_server_error_stops_at_attempt_ceiling(self, live_fetcher):
        calls = []

        async def handler(request):
            calls.append(1)
            return web.json_response({"error": "boom"}, status=500)

        server = await serve(handler)
        try:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await live_fetcher.fetch(str(server.make_url("/data")))
        finally:
            await server.close()

        assert exc_info.value.status == 500
        assert len(calls) == 3

    async def test_closed_session_is_reopened(self, live_fetcher):
        async def handler(request):
            return web.Response(text="DATE,VALUE\n")

        server = await serve(handler)
        try:
            url = str(server.make_url("/data"))
            assert await live_fetcher.fetch_text(url) == "DATE,VALUE\n"
            await live_fetcher.close()
            assert await live_fetcher.fetch_text(url) == "DATE,VALUE\n"
        finally:
            await server.close()
