from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import test_utils, web
from support import User

from pyquerycache._transport import HttpTransport
from pyquerycache.cancellation import CancellationToken
from pyquerycache.client import QueryClient
from pyquerycache.endpoint import create_endpoint
from pyquerycache.exceptions import TransportError


class _Recorder:
    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []


def _app(recorder: _Recorder) -> web.Application:
    async def get_user(request: web.Request) -> web.Response:
        recorder.requests.append({"path": request.path, "query": list(request.query.items())})
        return web.json_response({"id": request.match_info["id"], "name": "Alice"})

    async def create_user(request: web.Request) -> web.Response:
        body = await request.json()
        recorder.requests.append({"path": request.path, "body": body})
        return web.json_response({"id": "9", **body})

    async def no_content(request: web.Request) -> web.Response:
        return web.Response(status=204)

    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=500, text="kaboom")

    async def not_json(request: web.Request) -> web.Response:
        return web.Response(status=200, text="<html>")

    app = web.Application()
    app.router.add_get("/users/{id}", get_user)
    app.router.add_post("/users", create_user)
    app.router.add_get("/empty", no_content)
    app.router.add_get("/broken", broken)
    app.router.add_get("/html", not_json)
    return app


@pytest.fixture
def recorder() -> _Recorder:
    return _Recorder()


@pytest_asyncio.fixture
async def http(recorder: _Recorder) -> AsyncIterator[HttpTransport]:
    async with test_utils.TestServer(_app(recorder)) as server:
        async with HttpTransport(str(server.make_url("/")), headers={"x-client": "tests"}) as transport:
            yield transport


@pytest.mark.asyncio
async def test_get_fills_path_and_query(http: HttpTransport, recorder: _Recorder) -> None:
    request = http.get("/users/{id}")

    raw = await request({"id": "a b", "active": True, "tag": ["x", "y"], "skip": None}, CancellationToken())

    assert raw == {"id": "a b", "name": "Alice"}
    assert recorder.requests == [
        {"path": "/users/a b", "query": [("active", "true"), ("tag", "x"), ("tag", "y")]},
    ]


@pytest.mark.asyncio
async def test_post_sends_json_body(http: HttpTransport, recorder: _Recorder) -> None:
    raw = await http.post("/users")({"name": "Bob"}, CancellationToken())

    assert raw == {"id": "9", "name": "Bob"}
    assert recorder.requests[0]["body"] == {"name": "Bob"}


@pytest.mark.asyncio
async def test_no_content_returns_none(http: HttpTransport) -> None:
    assert await http.get("/empty")({}, CancellationToken()) is None


@pytest.mark.asyncio
async def test_error_status_raises(http: HttpTransport) -> None:
    with pytest.raises(TransportError) as exc_info:
        await http.get("/broken")({}, CancellationToken())
    assert exc_info.value.status_code == 500
    assert exc_info.value.endpoint == "/broken"


@pytest.mark.asyncio
async def test_invalid_json_raises(http: HttpTransport) -> None:
    with pytest.raises(TransportError):
        await http.get("/html")({}, CancellationToken())


@pytest.mark.asyncio
async def test_missing_path_param_raises(http: HttpTransport) -> None:
    with pytest.raises(TransportError):
        await http.get("/users/{id}")({}, CancellationToken())


@pytest.mark.asyncio
async def test_cancelled_token_skips_request(http: HttpTransport, recorder: _Recorder) -> None:
    token = CancellationToken()
    token.cancel()

    assert await http.get("/users/{id}")({"id": "1"}, token) is None
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_transport_requires_context() -> None:
    transport = HttpTransport("http://localhost")
    with pytest.raises(TransportError):
        await transport.get("/x")({}, CancellationToken())


@pytest.mark.asyncio
async def test_client_request_over_http(http: HttpTransport) -> None:
    get_user = create_endpoint(params=dict[str, Any], request=http.get("/users/{id}"), result=User, name="get_user")
    client = QueryClient()

    user = await client.request(get_user, {"id": "5"})

    assert isinstance(user, User)
    assert user.name == "Alice"
    assert client.get_instance(User, {"id": "5"}) is user
