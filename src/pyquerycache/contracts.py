"""Bidirectional contracts built on pydantic ``TypeAdapter``.

A :class:`Contract` converts between the internal value of a type and its
external (JSON-compatible) form:

* ``parse(raw, client=...)`` validates raw data into the internal value.
  When a client is passed, nested :class:`~pyquerycache.models.Entity`
  values are resolved through that client's entity stores.
* ``serialize(value)`` dumps an internal value into JSON-compatible data.
* ``fingerprint(value)`` is the stable cache key string of a value.

Unions should be written as discriminated unions
(``Annotated[A | B, Field(discriminator="kind")]``); pydantic then
dispatches on the tag both ways. Untagged unions still work through
pydantic's smart mode but resolve by trying members.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from pyquerycache.exceptions import ContractValidationError
from pyquerycache.models import CLIENT_CONTEXT_KEY
from pyquerycache.reactive import batch

if TYPE_CHECKING:
    from pyquerycache.client import QueryClient

T = TypeVar("T")


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


class Contract(Generic[T]):
    """Parse/serialize pair for one type."""

    def __init__(self, tp: Any, *, name: str | None = None) -> None:
        self.type = tp
        self.name = name or _type_name(tp)
        self._adapter: TypeAdapter[T] = TypeAdapter(tp)

    def parse(self, raw: Any, *, client: QueryClient | None = None) -> T:
        """Validate *raw* into the internal value.

        Entities merged into *client*'s stores notify their subscribers only
        after the whole value has been parsed.
        """
        context = {CLIENT_CONTEXT_KEY: client} if client is not None else None
        try:
            with batch():
                return self._adapter.validate_python(raw, context=context)
        except ValidationError as exc:
            raise ContractValidationError(
                f"{self.name} parse failed: {exc}",
                errors=exc.errors(),
                contract=self.name,
            ) from exc

    def serialize(self, value: T) -> Any:
        try:
            return self._adapter.dump_python(value, mode="json", by_alias=True)
        except PydanticSerializationError as exc:
            raise ContractValidationError(
                f"{self.name} serialize failed: {exc}",
                contract=self.name,
            ) from exc

    def fingerprint(self, value: T) -> str:
        """Stable string of the serialized value, used as the cache key."""
        return json.dumps(self.serialize(value), sort_keys=True, separators=(",", ":"))

    def __repr__(self) -> str:
        return f"Contract({self.name})"


def as_contract(tp: Any) -> Contract[Any]:
    """Return *tp* itself if it already is a contract, otherwise wrap it."""
    if isinstance(tp, Contract):
        return tp
    return Contract(tp)
