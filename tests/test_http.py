from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from linodeswarm.infra.http import HttpClient, HttpError

pytestmark = [pytest.mark.unit]


def make_app() -> web.Application:
    app = web.Application()

    async def form_echo(request: web.Request) -> web.Response:
        form = await request.post()
        return web.json_response({"form": {k: str(v) for k, v in form.items()}})

    async def html_json(_: web.Request) -> web.Response:
        return web.Response(text='{"ok": true}', content_type="text/html")

    async def empty(_: web.Request) -> web.Response:
        return web.Response(status=204, body=b"")

    async def server_error(_: web.Request) -> web.Response:
        return web.Response(status=500, text="internal server error")

    app.router.add_post("/form", form_echo)
    app.router.add_post("/html", html_json)
    app.router.add_post("/empty", empty)
    app.router.add_post("/server-error", server_error)
    return app


@pytest.fixture
async def server():
    srv = TestServer(make_app())
    await srv.start_server()
    yield srv
    await srv.close()


@pytest.fixture
def base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


# ─── Requests ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_post_form_is_form_encoded(base_url: str):
    async with HttpClient(base_url) as http:
        result = await http.post_form("/form", {"api_action": "test.echo", "x": "1"})
    assert result == {"form": {"api_action": "test.echo", "x": "1"}}


@pytest.mark.asyncio
async def test_json_decoded_regardless_of_content_type(base_url: str):
    async with HttpClient(base_url) as http:
        assert await http.post_form("/html") == {"ok": True}


@pytest.mark.asyncio
async def test_empty_body_returns_none(base_url: str):
    async with HttpClient(base_url) as http:
        assert await http.post_form("/empty") is None


# ─── Errors ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_http_error_on_5xx(base_url: str):
    async with HttpClient(base_url) as http:
        with pytest.raises(HttpError) as exc_info:
            await http.post_form("/server-error")
    assert exc_info.value.status == 500
    assert "internal server error" in exc_info.value.body


@pytest.mark.asyncio
async def test_connection_error_maps_to_status_zero():
    async with HttpClient("http://127.0.0.1:1", timeout=5) as http:
        with pytest.raises(HttpError) as exc_info:
            await http.post_form("/")
    assert exc_info.value.status == 0


@pytest.mark.asyncio
async def test_close_is_idempotent(base_url: str):
    http = HttpClient(base_url)
    await http.post_form("/html")
    await http.close()
    await http.close()
