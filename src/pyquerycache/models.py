"""Reactive pydantic models and identity-keyed entities.

Every cached model inherits from :class:`Model` which provides:

* subscription and change propagation (see :mod:`pyquerycache.reactive`),
* conversion of ``list``/``dict`` field values into reactive containers,
* change notification on attribute assignment, skipped when the new value
  is the same as the current one.

:class:`Entity` adds an identity key. Fields annotated with
``Annotated[T, model_key]`` form the key; when an entity is parsed through a
:class:`~pyquerycache.client.QueryClient` the parsed instance is merged into
the single live instance registered for that key.

Example::

    class User(Entity):
        id: Annotated[int, model_key, identifier("user")]
        name: str
"""

from __future__ import annotations

import dataclasses
import functools
import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    PrivateAttr,
    ValidationError,
    ValidationInfo,
    create_model,
    model_validator,
)
from pydantic.functional_validators import ModelWrapValidatorHandler

from pyquerycache.exceptions import ContractValidationError, ModelDefinitionError
from pyquerycache.reactive import Reactive, ReactiveState, make_reactive

if TYPE_CHECKING:
    from pyquerycache.client import QueryClient

#: Key under which the owning client travels in the pydantic validation context.
CLIENT_CONTEXT_KEY = "pyquerycache_client"

_MISSING: Any = object()


class _ModelKeyMarker:
    """``Annotated`` marker for identity key fields."""

    def __repr__(self) -> str:
        return "model_key"


model_key = _ModelKeyMarker()


@dataclasses.dataclass(frozen=True)
class Identifier:
    """``Annotated`` marker for a generated identifier field.

    Mocks assign ``"1"``, ``"2"``, ... per identifier *name*.
    """

    name: str


def identifier(name: str) -> Identifier:
    return Identifier(name)


def same_value(current: Any, incoming: Any) -> bool:
    """Whether assigning *incoming* over *current* would change nothing.

    Entities compare by identity, other models field by field, containers
    element-wise, plain values by type and equality.
    """
    if current is incoming:
        return True
    if isinstance(current, list) and isinstance(incoming, list):
        return len(current) == len(incoming) and all(same_value(a, b) for a, b in zip(current, incoming))
    if isinstance(current, dict) and isinstance(incoming, dict):
        return current.keys() == incoming.keys() and all(same_value(current[k], incoming[k]) for k in current)
    if (
        type(current) is type(incoming)
        and isinstance(current, Model)
        and not isinstance(current, Entity)
    ):
        return all(
            same_value(current.__dict__.get(name, _MISSING), incoming.__dict__.get(name, _MISSING))
            for name in type(current).model_fields
        )
    if isinstance(current, Reactive) or isinstance(incoming, Reactive):
        return False
    if type(current) is not type(incoming):
        return False
    try:
        return bool(current == incoming)
    except (TypeError, ValueError):
        return False


class Model(Reactive, BaseModel):
    """Base for every model whose instances live in the cache."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )

    _reactive: ReactiveState = PrivateAttr(default_factory=ReactiveState)

    @model_validator(mode="after")
    def _make_fields_reactive(self) -> Model:
        for name in type(self).model_fields:
            value = self.__dict__.get(name, _MISSING)
            if value is _MISSING:
                continue
            converted = make_reactive(value, self)
            if converted is not value:
                self.__dict__[name] = converted
        return self

    def __setattr__(self, name: str, value: Any) -> None:
        if name not in type(self).model_fields:
            super().__setattr__(name, value)
            return
        if same_value(self.__dict__.get(name, _MISSING), value):
            return
        super().__setattr__(name, make_reactive(value, self))
        self._changed()

    def _holds(self, child: Reactive) -> bool:
        return any(self.__dict__.get(name) is child for name in type(self).model_fields)

    def assign_from(self, other: BaseModel) -> bool:
        """Copy the fields *other* explicitly carries onto this instance.

        Fields that were not part of *other*'s input are left untouched.
        Subscribers are notified once if anything changed.

        Returns
        -------
        bool
            Whether any field changed.
        """
        changed = False
        for name in other.model_fields_set:
            if name not in type(self).model_fields:
                continue
            value = getattr(other, name)
            if same_value(self.__dict__.get(name, _MISSING), value):
                continue
            self.__dict__[name] = make_reactive(value, self)
            self.__pydantic_fields_set__.add(name)
            changed = True
        if changed:
            self._changed()
        return changed

    def model_copy(self, *, update: Mapping[str, Any] | None = None, deep: bool = False) -> Model:
        copied = super().model_copy(update=update, deep=deep)
        # A copy never shares subscribers or parent links with its source.
        copied._reactive = ReactiveState()
        copied._make_fields_reactive()
        return copied


@functools.cache
def _key_model(cls: type[Entity]) -> type[BaseModel]:
    fields = cls.key_fields()
    return create_model(
        f"{cls.__name__}Key",
        __config__=ConfigDict(populate_by_name=True, extra="ignore"),
        **{name: (cls.model_fields[name].annotation, ...) for name in fields},
    )


class Entity(Model):
    """A model with an identity key, normalized to one live instance per key."""

    @classmethod
    def key_fields(cls) -> tuple[str, ...]:
        names = tuple(
            name for name, field in cls.model_fields.items() if any(meta is model_key for meta in field.metadata)
        )
        if not names:
            raise ModelDefinitionError(f"{cls.__name__} declares no identity key fields (use Annotated[..., model_key])")
        return names

    @classmethod
    def identifier_fields(cls) -> dict[str, str]:
        """Map of field name to identifier name for generated identifiers."""
        result: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            for meta in field.metadata:
                if isinstance(meta, Identifier):
                    result[name] = meta.name
        return result

    @classmethod
    def cache_key_for(cls, key: Mapping[str, Any] | BaseModel) -> str:
        """Stable lookup string for an identity key (or any object carrying it)."""
        fields = cls.key_fields()
        if isinstance(key, BaseModel):
            values = {name: getattr(key, name) for name in fields if name in type(key).model_fields}
        else:
            values = dict(key)
        try:
            dumped = _key_model(cls).model_validate(values).model_dump(mode="json")
        except ValidationError as exc:
            raise ContractValidationError(
                f"Invalid identity key for {cls.__name__}: {exc}",
                errors=exc.errors(),
                contract=f"{cls.__name__}Key",
            ) from exc
        return json.dumps(dumped, sort_keys=True, separators=(",", ":"))

    @property
    def identity_key(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in type(self).key_fields()}

    @property
    def cache_key(self) -> str:
        return type(self).cache_key_for(self)

    @model_validator(mode="wrap")
    @classmethod
    def _resolve_identity(
        cls,
        data: Any,
        handler: ModelWrapValidatorHandler[Entity],
        info: ValidationInfo,
    ) -> Entity:
        """Route parsed instances through the client's entity store."""
        instance = handler(data)
        context = info.context
        client: QueryClient | None = context.get(CLIENT_CONTEXT_KEY) if isinstance(context, dict) else None
        if client is None:
            return instance
        return client.get_entity_store(type(instance)).merge(instance)
