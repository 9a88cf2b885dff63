"""Unit tests for the platform HTTP client against a local aiohttp server."""
from __future__ import annotations

import asyncio
from typing import AsyncGenerator

import pytest
from aiohttp import web
from aiohttp import test_utils

from adapters.qywechat import QyWechatHttpClient
from utils.exceptions import PlatformRequestError


async def gettoken(request: web.Request) -> web.Response:
    return web.json_response({"errcode": 0, "access_token": request.query["corpid"] + "-token"})


async def send(request: web.Request) -> web.Response:
    body = await request.json()
    return web.json_response({"errcode": 0, "echo": body, "token": request.query["access_token"]})


async def plain_json(request: web.Request) -> web.Response:
    return web.Response(text='{"errcode": 0}', content_type="text/plain")


async def html(request: web.Request) -> web.Response:
    return web.Response(text="<html>bad gateway</html>", content_type="text/html")


async def json_list(request: web.Request) -> web.Response:
    return web.json_response([1, 2])


async def server_error(request: web.Request) -> web.Response:
    return web.Response(status=502)


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({"errcode": 0})


@pytest.fixture
async def server() -> AsyncGenerator[test_utils.TestServer, None]:
    app = web.Application()
    app.router.add_get("/cgi-bin/gettoken", gettoken)
    app.router.add_post("/cgi-bin/message/send", send)
    app.router.add_get("/cgi-bin/plain", plain_json)
    app.router.add_get("/cgi-bin/html", html)
    app.router.add_get("/cgi-bin/list", json_list)
    app.router.add_get("/cgi-bin/error", server_error)
    app.router.add_get("/cgi-bin/slow", slow)
    test_server = test_utils.TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.fixture
async def client(server: test_utils.TestServer) -> AsyncGenerator[QyWechatHttpClient, None]:
    http = QyWechatHttpClient(base_url=str(server.make_url("/cgi-bin")), timeout=0.2)
    yield http
    await http.close()


class TestRequests:
    async def test_get_json(self, client) -> None:
        data = await client.get_json("gettoken", params={"corpid": "ww1", "corpsecret": "s"})
        assert data["access_token"] == "ww1-token"

    async def test_post_json(self, client) -> None:
        data = await client.post_json("/message/send", {"touser": "u1"}, params={"access_token": "T"})
        assert data["echo"] == {"touser": "u1"}
        assert data["token"] == "T"

    async def test_json_served_as_text_plain(self, client) -> None:
        assert await client.get_json("plain") == {"errcode": 0}


class TestFailures:
    async def test_non_200_status(self, client) -> None:
        with pytest.raises(PlatformRequestError) as exc_info:
            await client.get_json("error")
        assert not exc_info.value.timeout

    async def test_non_json_body(self, client) -> None:
        with pytest.raises(PlatformRequestError):
            await client.get_json("html")

    async def test_non_object_json(self, client) -> None:
        with pytest.raises(PlatformRequestError):
            await client.get_json("list")

    async def test_timeout(self, client) -> None:
        with pytest.raises(PlatformRequestError) as exc_info:
            await client.get_json("slow")
        assert exc_info.value.timeout

    async def test_unreachable_host(self) -> None:
        http = QyWechatHttpClient(base_url="http://127.0.0.1:1/cgi-bin", timeout=1)
        try:
            with pytest.raises(PlatformRequestError):
                await http.get_json("gettoken")
        finally:
            await http.close()


class TestSessionLifecycle:
    async def test_close_then_reuse_creates_new_session(self, client) -> None:
        await client.get_json("plain")
        await client.close()
        assert await client.get_json("plain") == {"errcode": 0}

    async def test_context_manager_closes_session(self, server) -> None:
        async with QyWechatHttpClient(base_url=str(server.make_url("/cgi-bin"))) as http:
            await http.get_json("plain")
        assert http._session is None
