from __future__ import annotations

import asyncio
import logging

import pytest
from support import Api, FakeTransport, User, flush

from pyquerycache.client import QueryClient
from pyquerycache.exceptions import ContractValidationError, TransportError
from pyquerycache.resource import Resource


@pytest.mark.asyncio
async def test_fetch_success_publishes_data_and_fires_listeners(
    client: QueryClient, api: Api, transport: FakeTransport
) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    fired: list[bool] = []
    resource.add_listener(lambda: fired.append(resource.loading))

    task = resource.fetch({"id": "1"})
    assert resource.loading is True
    await flush()
    assert len(transport.calls) == 1
    assert transport.calls[0].params == {"id": "1"}

    transport.calls[0].resolve({"id": "1", "name": "Alice"})
    data = await task

    assert isinstance(data, User)
    assert resource.data is data
    assert resource.loading is False
    assert resource.error is None
    assert fired == [False]


@pytest.mark.asyncio
async def test_fetch_error_is_published_not_raised(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    fired: list[int] = []
    resource.add_listener(lambda: fired.append(1))

    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[0].fail(TransportError("HTTP 500", status_code=500))

    assert await task is None
    assert isinstance(resource.error, TransportError)
    assert resource.loading is False
    assert fired == [1]


@pytest.mark.asyncio
async def test_validation_error_is_published(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[0].resolve({"id": "1"})

    await task
    assert isinstance(resource.error, ContractValidationError)


@pytest.mark.asyncio
async def test_success_clears_previous_error(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[0].fail(TransportError("down"))
    await task

    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[1].resolve({"id": "1", "name": "Alice"})
    await task

    assert resource.error is None
    assert resource.data is not None


@pytest.mark.asyncio
async def test_supersession_keeps_only_newest_result(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    fired: list[int] = []
    resource.add_listener(lambda: fired.append(1))

    first = resource.fetch({"id": "1"})
    await flush()
    second = resource.fetch({"id": "1"})
    await flush()

    assert transport.calls[0].token.cancelled
    assert await first is None
    # The superseded fetch publishes nothing.
    assert resource.loading is True
    assert fired == []

    transport.calls[1].resolve({"id": "1", "name": "Newest"})
    await second

    assert resource.data.name == "Newest"
    assert resource.loading is False
    assert fired == [1]


@pytest.mark.asyncio
async def test_cancellation_does_not_set_error(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})

    def listener() -> None:
        pass

    resource.add_listener(listener)
    task = resource.fetch({"id": "1"})
    await flush()

    resource.remove_listener(listener)
    assert transport.calls[0].token.cancelled
    assert await task is None
    assert resource.error is None
    assert resource.loading is False


@pytest.mark.asyncio
async def test_result_after_cancel_is_discarded(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    task = resource.fetch({"id": "1"})
    await flush()

    # Resolve and cancel in the same loop iteration.
    transport.calls[0].resolve({"id": "1", "name": "Late"})
    resource.remove_listener(lambda: None)

    assert await task is None
    assert resource.data is None
    assert client.get_instance(User, {"id": "1"}) is None


@pytest.mark.asyncio
async def test_is_used_and_is_ready(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    assert not resource.is_used
    assert not resource.is_ready

    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[0].resolve({"id": "1", "name": "Alice"})
    await task

    # Data nobody observes is not trusted.
    assert resource.data is not None
    assert not resource.is_ready

    unsubscribe = resource.data.subscribe(lambda: None)
    assert resource.is_used
    assert resource.is_ready
    unsubscribe()

    unsubscribe = resource.subscribe(lambda: None)
    assert resource.is_ready
    task = resource.fetch({"id": "1"})
    assert not resource.is_ready
    await flush()
    transport.calls[1].resolve({"id": "1", "name": "Alice"})
    await task
    assert resource.is_ready
    unsubscribe()
    assert not resource.is_ready


@pytest.mark.asyncio
async def test_deep_data_change_notifies_resource(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.list_users, {})
    task = resource.fetch({})
    await flush()
    transport.calls[0].resolve([{"id": "1", "name": "Alice"}])
    await task

    calls: list[int] = []
    resource.subscribe(lambda: calls.append(1))
    resource.data[0].name = "Alicia"

    assert calls == [1]


@pytest.mark.asyncio
async def test_fetch_errors_are_logged_at_debug(
    client: QueryClient, api: Api, transport: FakeTransport, caplog: pytest.LogCaptureFixture
) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    with caplog.at_level(logging.DEBUG, logger="pyquerycache.resource"):
        task = resource.fetch({"id": "1"})
        await flush()
        transport.calls[0].fail(TransportError("down"))
        await task

    assert any("failed" in record.getMessage() and record.exc_info for record in caplog.records)


@pytest.mark.asyncio
async def test_external_task_cancellation_propagates(client: QueryClient, api: Api, transport: FakeTransport) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    task = resource.fetch({"id": "1"})
    await flush()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert resource.loading is False
    assert resource.error is None


@pytest.mark.asyncio
async def test_aborted_request_settles_without_publishing(
    client: QueryClient, api: Api, transport: FakeTransport
) -> None:
    resource = Resource(client, api.get_user, {"id": "1"})
    previous = TransportError("down")
    resource.error = previous
    fired: list[int] = []
    resource.add_listener(lambda: fired.append(1))

    task = resource.fetch({"id": "1"})
    await flush()
    transport.calls[0].resolve(None)

    assert await task is None
    assert resource.loading is False
    assert resource.data is None
    assert resource.error is previous
    assert fired == [1]
    assert client.get_instance(User, {"id": "1"}) is None
