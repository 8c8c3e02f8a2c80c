"""Custom exception hierarchy for pyquerycache."""

from __future__ import annotations

from typing import Any


class QueryCacheError(Exception):
    """Base exception for all pyquerycache errors."""


class ConfigError(QueryCacheError):
    """Invalid or missing configuration."""


class ModelDefinitionError(QueryCacheError):
    """An entity model is declared incorrectly (e.g. no identity key fields)."""


class ContractValidationError(QueryCacheError):
    """A value did not match its contract while parsing or serializing.

    Wraps :class:`pydantic.ValidationError` so callers only need to handle
    the pyquerycache hierarchy.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        contract: str = "",
    ) -> None:
        self.errors = errors or []
        self.contract = contract
        super().__init__(message)


class RequestCancelledError(QueryCacheError):
    """The request was cancelled through its cancellation token.

    Cancellation is never published as a resource or query error; a
    superseded or abandoned fetch is silently discarded.
    """


class TransportError(QueryCacheError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class MissingCacheDataError(QueryCacheError):
    """A ``cache-only`` query was resolved against a fingerprint with no data.

    Raised synchronously to whoever triggered the resolution (the first
    ``subscribe`` or the params change), because asking for data that is
    not cached is a caller contract error.
    """

    def __init__(self, message: str, *, endpoint: str = "", fingerprint: str = "") -> None:
        self.endpoint = endpoint
        self.fingerprint = fingerprint
        super().__init__(message)


class EndpointNotMockedError(QueryCacheError):
    """A mock client was asked to call an endpoint without a registered mock."""


class EndpointAlreadyMockedError(QueryCacheError):
    """A mock handler is already registered for the endpoint."""
