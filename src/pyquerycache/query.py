"""Reactive query controller.

A :class:`Query` binds an endpoint to a (possibly changing) params source.
It stays inert until it gets its first subscriber. While subscribed it
fingerprints the current params, binds the matching :class:`Resource`,
applies its fetch policy and republishes ``loading``/``error``/``params``
and a snapshot of the data.

Example::

    query = client.query(get_user, {"id": 1})
    unsubscribe = query.subscribe(lambda: print(query.state))
    ...
    query.set_params({"id": 2})
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel

from pyquerycache.exceptions import MissingCacheDataError
from pyquerycache.models import Model
from pyquerycache.policy import FetchPolicy, should_adopt_cached, should_fetch_after_adopt, uses_shared_cache
from pyquerycache.reactive import Box, Computed, Reactive, ReactiveDict, ReactiveList, ReactiveState, Unsubscribe
from pyquerycache.resource import Resource
from pyquerycache.snapshot import restore, snapshot

if TYPE_CHECKING:
    from pyquerycache.client import QueryClient
    from pyquerycache.endpoint import Endpoint

_logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")

OnFetched = Callable[[Any, Any], None]
ParamsSource = Box[Any] | Computed[Any]


def as_params_source(params: Any) -> ParamsSource:
    """Normalize what a query was given as params into a reactive source.

    ``Box``/``Computed`` instances are used as they are, zero-argument
    callables are wrapped in :class:`Computed` (they are re-evaluated when
    the source is notified) and anything else becomes a :class:`Box`.
    """
    if isinstance(params, (Box, Computed)):
        return params
    if callable(params) and not isinstance(params, (BaseModel, type)):
        return Computed(params)
    return Box(params)


@dataclasses.dataclass(frozen=True, slots=True)
class QueryState:
    """Immutable view of everything a query publishes."""

    loading: bool
    error: Exception | None
    params: Any
    data: Any


class Query(Reactive, Generic[P, R]):
    """Declarative loader for one endpoint.

    Parameters
    ----------
    client : QueryClient
        Owning client; provides the resource and query registries.
    endpoint : Endpoint
        Endpoint to load.
    params : Any
        Params source: a :class:`Box`, a :class:`Computed`, a zero-argument
        callable or a plain params value. ``None`` means "nothing to load".
    fetch_policy : FetchPolicy
        How cached data is used, see :mod:`pyquerycache.policy`.
    on_fetched : callable, optional
        ``on_fetched(data, params)`` runs after each fetch issued by this
        query that produced data.
    """

    def __init__(
        self,
        client: QueryClient,
        endpoint: Endpoint[P, R],
        params: Any,
        *,
        fetch_policy: FetchPolicy | str = FetchPolicy.CACHE_FIRST,
        on_fetched: OnFetched | None = None,
    ) -> None:
        self._reactive = ReactiveState()
        self._client = client
        self.endpoint = endpoint
        self.fetch_policy = FetchPolicy(fetch_policy)
        self._source = as_params_source(params)
        self._on_fetched = on_fetched

        # Published values.
        self._loading = False
        self._error: Exception | None = None
        self._params: P | None = None
        self._loaded: Resource[P, R] | None = None

        self._current_params: P | None = None
        self._fingerprint: str | None = None
        self._resource: Resource[P, R] | None = None
        self._unsubscribe_source: Unsubscribe | None = None
        self._unsubscribe_loaded: Unsubscribe | None = None
        self._state: QueryState | None = None

    def __repr__(self) -> str:
        return f"Query({self.endpoint!r}, policy={self.fetch_policy.value}, loading={self._loading})"

    # ------------------------------------------------------------------
    # Published surface
    # ------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def params(self) -> P | None:
        """Params of the data currently published."""
        return self._params

    @property
    def data(self) -> Any:
        """Snapshot of the loaded resource's data, or ``None``."""
        loaded = self._loaded
        return snapshot(loaded.data) if loaded is not None else None

    @property
    def state(self) -> QueryState:
        """All published values at once; the same object while none changed."""
        loading, error, params, data = self._loading, self._error, self._params, self.data
        memo = self._state
        if (
            memo is not None
            and memo.loading is loading
            and memo.error is error
            and memo.params is params
            and memo.data is data
        ):
            return memo
        self._state = QueryState(loading=loading, error=error, params=params, data=data)
        return self._state

    @property
    def source(self) -> ParamsSource:
        return self._source

    def set_params(self, params: P | None) -> None:
        """Replace the params of a query created from a plain value or a ``Box``."""
        if not isinstance(self._source, Box):
            raise TypeError("set_params() needs a query whose params source is a Box")
        self._source.set(params)

    def refetch(self) -> asyncio.Task[R | None] | None:
        """Fetch the bound resource again, superseding a fetch in flight.

        Returns the fetch task, or ``None`` when nothing is bound.
        """
        return self._fetch(force=True)

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def _on_become_observed(self) -> None:
        _logger.debug("Activating %r", self)
        self._client.get_endpoint_queries(self.endpoint)[self] = None
        self._unsubscribe_source = self._source.subscribe(self._on_params_changed)
        self._watch_loaded(self._loaded)
        try:
            params = self._source.get()
            self._current_params = params
            self._fingerprint = self._fingerprint_of(params)
            self._handle_resource()
        except BaseException:
            self._deactivate()
            raise

    def _on_become_unobserved(self) -> None:
        _logger.debug("Deactivating %r", self)
        self._deactivate()

    def _deactivate(self) -> None:
        self._client.get_endpoint_queries(self.endpoint).pop(self, None)
        unsubscribe, self._unsubscribe_source = self._unsubscribe_source, None
        if unsubscribe is not None:
            unsubscribe()
        if self._resource is not None:
            self._resource.remove_listener(self._on_resource_settled)
        self._watch_loaded(None)

    def _watch_loaded(self, resource: Resource[P, R] | None) -> None:
        unsubscribe, self._unsubscribe_loaded = self._unsubscribe_loaded, None
        if unsubscribe is not None:
            unsubscribe()
        # Subscribing marks the resource (and so its data) as used.
        if resource is not None and self.is_observed:
            self._unsubscribe_loaded = resource.subscribe(self._changed)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _fingerprint_of(self, params: P | None) -> str | None:
        if params is None:
            return None
        return self.endpoint.params.fingerprint(params)

    def _on_params_changed(self) -> None:
        params = self._source.get()
        fingerprint = self._fingerprint_of(params)
        self._current_params = params
        if fingerprint == self._fingerprint:
            return
        self._fingerprint = fingerprint
        self._handle_resource()

    def _publish(self, **values: Any) -> None:
        changed = False
        for name, value in values.items():
            attr = f"_{name}"
            if getattr(self, attr) is value:
                continue
            if name == "loaded":
                self._watch_loaded(value)
            setattr(self, attr, value)
            changed = True
        if changed:
            self._changed()

    def _get_resource(self, params: P, fingerprint: str) -> Resource[P, R]:
        if not uses_shared_cache(self.fetch_policy):
            return Resource(self._client, self.endpoint, params)
        resources = self._client.get_endpoint_resources(self.endpoint)
        resource = resources.get(fingerprint)
        if resource is None:
            resource = Resource(self._client, self.endpoint, params)
            resources[fingerprint] = resource
        return resource

    def _handle_resource(self) -> None:
        if self._resource is not None:
            self._resource.remove_listener(self._on_resource_settled)

        params, fingerprint = self._current_params, self._fingerprint
        if params is None or fingerprint is None:
            self._resource = None
            self._publish(loaded=None, loading=False, error=None)
            return

        resource = self._get_resource(params, fingerprint)
        self._resource = resource

        policy = self.fetch_policy
        if should_adopt_cached(policy=policy, is_ready=resource.is_ready, has_data=resource.data is not None):
            _logger.debug("%r adopting cached data for %s", self, fingerprint)
            self._publish(loaded=resource, params=params, error=resource.error, loading=False)
            if not should_fetch_after_adopt(policy):
                return
            # Refresh in the background: the adopted data stays published as not loading.
            self._fetch(background=True)
            return

        if policy == FetchPolicy.CACHE_ONLY:
            raise MissingCacheDataError(
                f"Missing query data in cache for {self.endpoint!r}",
                endpoint=self.endpoint.name,
                fingerprint=fingerprint,
            )

        self._fetch()

    def _fetch(self, *, force: bool = False, background: bool = False) -> asyncio.Task[R | None] | None:
        resource, params = self._resource, self._current_params
        if resource is None or params is None:
            return None
        if not background:
            self._publish(loading=True)
        resource.add_listener(self._on_resource_settled)
        if resource.loading and not force:
            # Another query already fetches this fingerprint; wait for it.
            return None
        task = resource.fetch(params)
        if self._on_fetched is not None:
            task.add_done_callback(lambda done: self._fetched(done, params))
        return task

    def _fetched(self, task: asyncio.Task[R | None], params: P) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        data = task.result()
        if data is not None and self._on_fetched is not None:
            self._on_fetched(data, params)

    def _on_resource_settled(self) -> None:
        resource = self._resource
        self._publish(
            loading=False,
            params=self._current_params,
            error=resource.error if resource is not None else None,
            loaded=resource,
        )


MergeMore = Callable[[Any, Any], Any]


class FetchMore(Reactive, Generic[P, R]):
    """Loads an additional page for a query and merges it into its data.

    Parameters
    ----------
    query : Query
        Query whose live data receives the extra page.
    merge : callable
        ``merge(live_data, more_data) -> merged``. The result replaces the
        content of the live data in place, so every snapshot consumer of the
        query is notified.

    Example::

        more = FetchMore(query, lambda data, extra: [*data, *extra])
        await more.fetch_more({"offset": 20})
    """

    def __init__(self, query: Query[P, R], merge: MergeMore) -> None:
        self._reactive = ReactiveState()
        self.query = query
        self._merge = merge
        self.loading_more = False
        self.error: Exception | None = None

    def _set(self, *, loading_more: bool, error: Exception | None) -> None:
        if self.loading_more is loading_more and self.error is error:
            return
        self.loading_more = loading_more
        self.error = error
        self._changed()

    async def fetch_more(self, more_params: Mapping[str, Any]) -> None:
        """Request with the query's params updated by *more_params* and merge.

        Does nothing while the query has no data or no params. Failures are
        published through :attr:`error` instead of being raised.
        """
        query = self.query
        data = restore(query.data)
        params = query.params
        if data is None or params is None:
            return

        self._set(loading_more=True, error=None)
        try:
            more = await query._client.request(query.endpoint, _merge_params(params, more_params))
            if more is not None:
                _assign(data, self._merge(data, more))
        except Exception as exc:
            _logger.debug("Fetching more for %r failed", query, exc_info=True)
            self._set(loading_more=False, error=exc)
            return
        self._set(loading_more=False, error=None)


def _merge_params(params: Any, more_params: Mapping[str, Any]) -> Any:
    if isinstance(params, BaseModel):
        return params.model_copy(update=dict(more_params))
    if isinstance(params, Mapping):
        return {**params, **more_params}
    raise TypeError(f"Cannot merge extra params into {type(params).__name__}")


def _assign(target: Any, merged: Any) -> None:
    if merged is target:
        return
    if isinstance(target, ReactiveList):
        target[:] = list(merged)
    elif isinstance(target, ReactiveDict):
        target.clear()
        target.update(merged)
    elif isinstance(target, Model) and isinstance(merged, BaseModel):
        target.assign_from(merged)
    else:
        raise TypeError(f"Cannot merge into {type(target).__name__}")
