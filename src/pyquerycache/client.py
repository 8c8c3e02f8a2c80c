"""Query client: registries of entity stores, resources and queries."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

from pyquerycache.cancellation import CancellationToken
from pyquerycache.config import QueryClientConfig
from pyquerycache.endpoint import Endpoint
from pyquerycache.entities import EntityStore
from pyquerycache.models import Entity
from pyquerycache.policy import FetchPolicy
from pyquerycache.query import OnFetched, Query
from pyquerycache.resource import Resource

_logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)
P = TypeVar("P")
R = TypeVar("R")


class QueryClient:
    """Owns every cache of one application.

    Usage::

        client = QueryClient()
        user = await client.request(get_user, {"id": 1})

        query = client.query(get_user, {"id": 1})
        unsubscribe = query.subscribe(render)

    Entity stores, endpoint resource maps and endpoint query sets are
    created lazily and live as long as the client; there is no eviction.
    """

    def __init__(self, config: QueryClientConfig | None = None) -> None:
        self._config = config or QueryClientConfig()
        self._entity_stores: dict[type[Entity], EntityStore[Any]] = {}
        self._resources: dict[Endpoint[Any, Any], dict[str, Resource[Any, Any]]] = {}
        self._queries: dict[Endpoint[Any, Any], dict[Query[Any, Any], None]] = {}

    @property
    def config(self) -> QueryClientConfig:
        return self._config

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def get_entity_store(self, model: type[E]) -> EntityStore[E]:
        store = self._entity_stores.get(model)
        if store is None:
            store = EntityStore(model)
            self._entity_stores[model] = store
        return store

    def get_endpoint_resources(self, endpoint: Endpoint[P, R]) -> dict[str, Resource[P, R]]:
        """Fingerprint to resource map of *endpoint* (shared by its queries)."""
        resources = self._resources.get(endpoint)
        if resources is None:
            resources = {}
            self._resources[endpoint] = resources
        return resources

    def get_endpoint_queries(self, endpoint: Endpoint[P, R]) -> dict[Query[P, R], None]:
        """Active queries of *endpoint*, in activation order."""
        queries = self._queries.get(endpoint)
        if queries is None:
            queries = {}
            self._queries[endpoint] = queries
        return queries

    def get_instance(self, model: type[E], key: Mapping[str, Any] | BaseModel) -> E | None:
        """Live instance of *model* for an identity key, or ``None``."""
        return self.get_entity_store(model).get(key)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        endpoint: Endpoint[P, R],
        params: P,
        token: CancellationToken | None = None,
    ) -> R | None:
        """Call *endpoint* once and parse the result.

        Entities found in the result are merged into this client's entity
        stores. Returns ``None`` when the transport reported an aborted call.

        Raises
        ------
        RequestCancelledError
            *token* was cancelled while the call was in flight.
        ContractValidationError
            Params could not be serialized or the result did not parse.
        """
        if token is None:
            token = CancellationToken()
        raw_params = endpoint.params.serialize(params)
        _logger.debug("Requesting %r", endpoint)
        raw = await endpoint.request(raw_params, token)
        if raw is None:
            return None
        token.raise_if_cancelled()
        return endpoint.result.parse(raw, client=self)

    def query(
        self,
        endpoint: Endpoint[P, R],
        params: Any,
        *,
        fetch_policy: FetchPolicy | str | None = None,
        on_fetched: OnFetched | None = None,
    ) -> Query[P, R]:
        """Create a query; it starts loading once subscribed to.

        *params* may be a value, a :class:`~pyquerycache.reactive.Box`, a
        :class:`~pyquerycache.reactive.Computed` or a zero-argument callable.
        ``fetch_policy`` defaults to ``config.default_fetch_policy``.
        """
        return Query(
            self,
            endpoint,
            params,
            fetch_policy=fetch_policy or self._config.default_fetch_policy,
            on_fetched=on_fetched,
        )
