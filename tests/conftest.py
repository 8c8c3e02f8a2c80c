from __future__ import annotations

from typing import Any

import pytest
from support import Api, FakeTransport, Post, User

from pyquerycache.client import QueryClient
from pyquerycache.endpoint import create_endpoint


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def api(transport: FakeTransport) -> Api:
    return Api(
        get_user=create_endpoint(
            params=dict[str, Any],
            request=transport.route("/users/{id}"),
            result=User,
            name="get_user",
        ),
        list_users=create_endpoint(
            params=dict[str, Any],
            request=transport.route("/users"),
            result=list[User],
            name="list_users",
        ),
        get_post=create_endpoint(
            params=dict[str, Any],
            request=transport.route("/posts/{id}"),
            result=Post,
            name="get_post",
        ),
    )


@pytest.fixture
def client() -> QueryClient:
    return QueryClient()
