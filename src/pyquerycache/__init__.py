"""pyquerycache - Async data-access layer with a normalized, reactive query cache."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyquerycache")
except PackageNotFoundError:
    __version__ = "0+local"
from pyquerycache._transport import HttpTransport, Transport, bind_request
from pyquerycache.cancellation import CancellationToken
from pyquerycache.client import QueryClient
from pyquerycache.config import QueryClientConfig
from pyquerycache.contracts import Contract, as_contract
from pyquerycache.endpoint import Endpoint, create_endpoint
from pyquerycache.entities import EntityStore
from pyquerycache.exceptions import (
    ConfigError,
    ContractValidationError,
    EndpointAlreadyMockedError,
    EndpointNotMockedError,
    MissingCacheDataError,
    ModelDefinitionError,
    QueryCacheError,
    RequestCancelledError,
    TransportError,
)
from pyquerycache.models import Entity, Model, identifier, model_key
from pyquerycache.policy import FetchPolicy
from pyquerycache.query import FetchMore, Query, QueryState
from pyquerycache.reactive import Box, Computed, Reactive, ReactiveDict, ReactiveList, batch
from pyquerycache.resource import Resource
from pyquerycache.snapshot import FrozenDict, FrozenList, FrozenRecord, restore, snapshot

__all__ = [
    "__version__",
    "Box",
    "CancellationToken",
    "Computed",
    "ConfigError",
    "Contract",
    "ContractValidationError",
    "Endpoint",
    "EndpointAlreadyMockedError",
    "EndpointNotMockedError",
    "Entity",
    "EntityStore",
    "FetchMore",
    "FetchPolicy",
    "FrozenDict",
    "FrozenList",
    "FrozenRecord",
    "HttpTransport",
    "MissingCacheDataError",
    "Model",
    "ModelDefinitionError",
    "Query",
    "QueryCacheError",
    "QueryClient",
    "QueryClientConfig",
    "QueryState",
    "Reactive",
    "ReactiveDict",
    "ReactiveList",
    "RequestCancelledError",
    "Resource",
    "Transport",
    "TransportError",
    "as_contract",
    "batch",
    "bind_request",
    "create_endpoint",
    "identifier",
    "model_key",
    "restore",
    "snapshot",
]
