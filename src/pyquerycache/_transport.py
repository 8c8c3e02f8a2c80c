"""Transport interface and a JSON-over-HTTP implementation on aiohttp."""

from __future__ import annotations

import json
import logging
import string
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from pyquerycache.cancellation import CancellationToken
from pyquerycache.exceptions import TransportError

_logger = logging.getLogger(__name__)

RequestFn = Callable[[Any, CancellationToken], Awaitable[Any]]
"""``async (serialized_params, token) -> raw | None`` used by endpoints."""


class Transport(Protocol):
    """Structural transport interface.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def send(self, method: str, path: str, params: Any, token: CancellationToken) -> Any: ...


def bind_request(transport: Transport, method: str, path: str) -> RequestFn:
    """Adapt ``transport.send`` for one method/path into an endpoint request function."""

    async def request(params: Any, token: CancellationToken) -> Any:
        return await transport.send(method, path, params, token)

    return request


def _query_items(params: Mapping[str, Any]) -> list[tuple[str, str]]:
    items: list[tuple[str, str]] = []
    for key, value in params.items():
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is None:
                continue
            if isinstance(item, bool):
                items.append((key, "true" if item else "false"))
            elif isinstance(item, (dict, list)):
                items.append((key, json.dumps(item, separators=(",", ":"))))
            else:
                items.append((key, str(item)))
    return items


def _fill_path(path: str, params: Any) -> tuple[str, Any]:
    """Substitute ``{name}`` placeholders and return the leftover params."""
    names = [field for _, field, _, _ in string.Formatter().parse(path) if field]
    if not names:
        return path, params
    if not isinstance(params, Mapping):
        raise TransportError(f"Path {path} needs params {names} but got {type(params).__name__}", endpoint=path)
    missing = [name for name in names if params.get(name) is None]
    if missing:
        raise TransportError(f"Missing path params {missing} for {path}", endpoint=path)
    filled = path.format(**{name: quote(str(params[name]), safe="") for name in names})
    remaining = {key: value for key, value in params.items() if key not in names}
    return filled, remaining


class HttpTransport:
    """JSON-over-HTTP transport.

    Usage::

        async with HttpTransport("https://api.example.com") as transport:
            get_user = create_endpoint(params=UserParams, request=transport.get("/users/{id}"), result=User)
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})

    async def __aenter__(self) -> HttpTransport:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise TransportError("Transport not initialized. Use 'async with HttpTransport(...) as transport:'")
        return self._http

    def get(self, path: str) -> RequestFn:
        """Request function sending params as the query string."""
        return bind_request(self, "GET", path)

    def post(self, path: str) -> RequestFn:
        """Request function sending params as the JSON body."""
        return bind_request(self, "POST", path)

    async def send(self, method: str, path: str, params: Any, token: CancellationToken) -> Any:
        """Perform one call and return the decoded JSON body.

        Returns ``None`` when the token was already cancelled (the request is
        not sent) or when the server answered ``204 No Content``.
        """
        if token.cancelled:
            return None
        http = self._require_session()
        filled, remaining = _fill_path(path, params)
        url = f"{self._base_url}{filled}"

        kwargs: dict[str, Any] = {"headers": {"accept": "application/json", **self._headers}}
        if method == "GET":
            if isinstance(remaining, Mapping) and remaining:
                kwargs["params"] = _query_items(remaining)
        elif remaining is not None:
            kwargs["json"] = remaining

        _logger.debug("%s %s", method, url)

        try:
            async with http.request(method, url, **kwargs) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {path} failed: {exc}", endpoint=path) from exc

        if status == 204:
            return None
        if status < 200 or status >= 300:
            raise TransportError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            ) from exc
