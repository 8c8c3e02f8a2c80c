"""Cached fetch outcome for one endpoint at one fixed fingerprint.

A resource may be fetched many times. Only the most recently issued fetch
is allowed to publish: issuing a new fetch cancels the token of the previous
one, and a result that arrives for a cancelled token is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from pyquerycache.cancellation import CancellationToken
from pyquerycache.exceptions import RequestCancelledError
from pyquerycache.reactive import Reactive, ReactiveState, batch, make_reactive

if TYPE_CHECKING:
    from pyquerycache.client import QueryClient
    from pyquerycache.endpoint import Endpoint

_logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")

Listener = Callable[[], None]


class Resource(Reactive, Generic[P, R]):
    """Holds ``data``/``loading``/``error`` of one (endpoint, params) pair.

    Subscribers are notified whenever one of those fields changes, and when
    the data itself changes deeply (e.g. an entity inside it is updated by
    another request).
    """

    def __init__(self, client: QueryClient, endpoint: Endpoint[P, R], params: P) -> None:
        self._reactive = ReactiveState()
        self._client = client
        self.endpoint = endpoint
        self.params = params
        self.data: R | None = None
        self.loading = False
        self.error: Exception | None = None
        self._listeners: dict[Listener, None] = {}
        self._token: CancellationToken | None = None

    def __repr__(self) -> str:
        return f"Resource({self.endpoint!r}, loading={self.loading})"

    def _holds(self, child: Reactive) -> bool:
        return self.data is child

    @property
    def is_used(self) -> bool:
        """Whether anybody currently depends on this resource.

        True with pending listeners, external subscribers, or when the data
        itself is subscribed to.
        """
        data = self.data
        return bool(self._listeners or self.is_observed or (isinstance(data, Reactive) and data.is_observed))

    @property
    def is_ready(self) -> bool:
        """Whether the data can be trusted without fetching.

        1. Data nobody observes is treated as invalidated; it is only used by
           ``cache-only`` queries.
        2. While loading, callers should wait for the pending result.
        3. A failed last fetch does not matter: earlier successful data is
           still usable.
        """
        return self.is_used and not self.loading and self.data is not None

    def add_listener(self, listener: Listener) -> None:
        """Register a one-shot callback for the next resolution."""
        self._listeners[listener] = None

    def remove_listener(self, listener: Listener) -> None:
        """Drop a listener; with no listeners left an in-flight fetch is cancelled."""
        self._listeners.pop(listener, None)
        if not self._listeners and self._token is not None:
            _logger.debug("No listeners left, cancelling fetch of %r", self)
            self._token.cancel()

    def _call_listeners(self) -> None:
        listeners = list(self._listeners)
        self._listeners.clear()
        for listener in listeners:
            listener()

    def fetch(self, params: P) -> asyncio.Task[R | None]:
        """Start fetching and return the task resolving to the new data.

        The previous in-flight fetch, if any, is cancelled. ``loading`` is set
        before this method returns. The task never raises for transport,
        validation or cancellation failures; they end up in :attr:`error`
        (cancellation excepted) and the task resolves to ``None``.

        A request that returns ``None`` counts as aborted: ``loading`` is
        cleared while ``data`` and ``error`` are kept. An endpoint therefore
        cannot publish ``None`` as a real result.
        """
        loop = asyncio.get_running_loop()
        previous = self._token
        if previous is not None:
            _logger.debug("Superseding in-flight fetch of %r", self)
            previous.cancel()
        token = CancellationToken()
        self._token = token
        self.params = params
        self.loading = True
        self._changed()
        return loop.create_task(self._run(params, token))

    async def _run(self, params: P, token: CancellationToken) -> R | None:
        try:
            data = await token.run(self._client.request(self.endpoint, params, token))
        except RequestCancelledError:
            _logger.debug("Fetch of %r cancelled", self)
            self._settle(token)
            return None
        except asyncio.CancelledError:
            self._settle(token)
            raise
        except Exception as exc:
            if self._client.config.log_fetch_errors:
                _logger.debug("Fetch of %r failed", self, exc_info=True)
            self._settle(token, error=exc)
            return None

        if token is not self._token:
            return None
        if data is None:
            # Aborted by the transport: nothing to publish.
            self._settle(token)
            return None
        self._token = None
        with batch():
            self.data = make_reactive(data, self)
            self.error = None
            self.loading = False
            self._changed()
            self._call_listeners()
        return self.data

    def _settle(self, token: CancellationToken, *, error: Exception | None = None) -> None:
        """Finish a fetch that produced no data, unless it was superseded."""
        if token is not self._token:
            return
        self._token = None
        if error is not None:
            self.error = error
        self.loading = False
        with batch():
            self._changed()
            self._call_listeners()

