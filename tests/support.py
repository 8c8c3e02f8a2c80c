"""Models, fake transport and helpers shared by the test modules."""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Annotated, Any

from pyquerycache.cancellation import CancellationToken
from pyquerycache.endpoint import Endpoint
from pyquerycache.models import Entity, Model, identifier, model_key


class Tag(Model):
    label: str


class User(Entity):
    id: Annotated[str, model_key, identifier("user")]
    name: str
    email: str | None = None
    tags: list[Tag] = []


class Post(Entity):
    id: Annotated[str, model_key, identifier("post")]
    title: str
    author: User


@dataclasses.dataclass
class FakeCall:
    path: str
    params: Any
    token: CancellationToken
    future: asyncio.Future[Any]

    def resolve(self, raw: Any) -> None:
        self.future.set_result(raw)

    def fail(self, exc: Exception) -> None:
        self.future.set_exception(exc)


class FakeTransport:
    """Records calls; each call waits until the test resolves it."""

    def __init__(self) -> None:
        self.calls: list[FakeCall] = []

    def route(self, path: str):
        async def request(params: Any, token: CancellationToken) -> Any:
            call = FakeCall(path, params, token, asyncio.get_running_loop().create_future())
            self.calls.append(call)
            return await call.future

        return request

    def calls_to(self, path: str) -> list[FakeCall]:
        return [call for call in self.calls if call.path == path]


@dataclasses.dataclass
class Api:
    get_user: Endpoint[Any, Any]
    list_users: Endpoint[Any, Any]
    get_post: Endpoint[Any, Any]


async def flush(rounds: int = 10) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


