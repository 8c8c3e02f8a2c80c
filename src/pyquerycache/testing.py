"""Test doubles: mocked endpoints and mock entity instances.

Usage::

    mocks = Mocks()
    alice = mocks.mock_instance(User, name="Alice")
    mocks.mock_endpoint(get_users, lambda params: [alice])

    client = MockQueryClient(mocks)
    users = await client.request(get_users, {})

The mock client serializes whatever a handler returns and parses it back,
so entities are normalized into the client's stores exactly like real
responses.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

from pyquerycache.cancellation import CancellationToken
from pyquerycache.client import QueryClient
from pyquerycache.config import QueryClientConfig
from pyquerycache.endpoint import Endpoint
from pyquerycache.exceptions import EndpointAlreadyMockedError, EndpointNotMockedError
from pyquerycache.models import Entity

_logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)
P = TypeVar("P")
R = TypeVar("R")

MockHandler = Callable[[Any], Any]


class Mocks:
    """Registry of mocked endpoints and mock entity instances."""

    def __init__(self) -> None:
        self.db: dict[type[Entity], dict[str, Entity]] = {}
        self.endpoints: dict[Endpoint[Any, Any], MockHandler] = {}
        self.identifier_counters: dict[str, int] = {}

    def mock_instance(self, model: type[E], **fields: Any) -> E:
        """Create an instance of *model* with generated identifiers.

        Every field marked with ``identifier(name)`` gets the next value of
        the counter for *name* (``"1"``, ``"2"``, ...). Counters are shared
        between models using the same identifier name. Explicit *fields* win
        over generated values.
        """
        identifiers: dict[str, Any] = {}
        for field_name, identifier_name in model.identifier_fields().items():
            count = self.identifier_counters.get(identifier_name, 0) + 1
            self.identifier_counters[identifier_name] = count
            identifiers[field_name] = str(count)
        instance = model.model_validate({**identifiers, **fields})
        self.db.setdefault(model, {})[instance.cache_key] = instance
        return instance

    def mock_endpoint(self, endpoint: Endpoint[P, R], handler: Callable[[P], Any]) -> None:
        """Serve *endpoint* from *handler* (``handler(params) -> result``, may be async)."""
        if endpoint in self.endpoints:
            raise EndpointAlreadyMockedError(f"{endpoint!r} is already mocked")
        self.endpoints[endpoint] = handler

    def get_instances(self, model: type[E]) -> list[E]:
        return list(self.db.get(model, {}).values())  # type: ignore[arg-type]

    def get_instance(self, model: type[E], key: Mapping[str, Any] | BaseModel) -> E | None:
        return self.db.get(model, {}).get(model.cache_key_for(key))  # type: ignore[return-value]


class MockQueryClient(QueryClient):
    """:class:`QueryClient` answering requests from :class:`Mocks`."""

    def __init__(self, mocks: Mocks, config: QueryClientConfig | None = None) -> None:
        super().__init__(config)
        self.mocks = mocks

    async def request(
        self,
        endpoint: Endpoint[P, R],
        params: P,
        token: CancellationToken | None = None,
    ) -> R | None:
        handler = self.mocks.endpoints.get(endpoint)
        if handler is None:
            raise EndpointNotMockedError(f"{endpoint!r} was not mocked")
        result = handler(params)
        if inspect.isawaitable(result):
            result = await result
        if token is not None:
            token.raise_if_cancelled()
        _logger.debug("Serving mocked %r", endpoint)
        raw = endpoint.result.serialize(result)
        return endpoint.result.parse(raw, client=self)
