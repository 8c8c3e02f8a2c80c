"""Immutable snapshots of reactive values.

:func:`snapshot` turns a live reactive value into a read-only structural
copy; :func:`restore` recovers the live value from a snapshot it produced.

Snapshots are memoized on their source together with the source's version.
Asking again for an unchanged value returns the very same object, and
unchanged children are shared between successive snapshots of a changed
parent, so consumers can skip work with identity checks. This referential
stability is best effort: it holds for as long as neither the value nor any
of its descendants changes.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from pyquerycache.models import Model
from pyquerycache.reactive import Reactive, ReactiveDict, ReactiveList, state_version


class FrozenList(tuple):
    """Snapshot of a :class:`~pyquerycache.reactive.ReactiveList`."""

    _source: Any = None

    def __repr__(self) -> str:
        return f"FrozenList({list(self)!r})"


class FrozenDict(Mapping[Any, Any]):
    """Read-only mapping snapshot of a :class:`~pyquerycache.reactive.ReactiveDict`."""

    __slots__ = ("_data", "_source")

    def __init__(self, data: dict[Any, Any], source: Any = None) -> None:
        object.__setattr__(self, "_data", data)
        object.__setattr__(self, "_source", source)

    def __getitem__(self, key: Any) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"


class FrozenRecord:
    """Snapshot of a :class:`~pyquerycache.models.Model`.

    Fields are read as attributes (``record.items`` is the ``items`` field
    even though mappings have an ``items()`` method) or by key. ``_asdict()``
    returns the field values as a plain dict.
    """

    __slots__ = ("_data", "_source", "_type_name")

    def __init__(self, data: dict[str, Any], source: Any = None, type_name: str = "") -> None:
        object.__setattr__(self, "_data", data)
        object.__setattr__(self, "_source", source)
        object.__setattr__(self, "_type_name", type_name)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FrozenRecord):
            return self._type_name == other._type_name and self._data == other._data
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def _asdict(self) -> dict[str, Any]:
        return dict(self._data)

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in self._data.items())
        return f"{self._type_name or 'FrozenRecord'}({fields})"


def _freeze(value: Reactive) -> Any:
    if isinstance(value, ReactiveList):
        frozen_list = FrozenList(snapshot(item) for item in value)
        frozen_list._source = value
        return frozen_list
    if isinstance(value, ReactiveDict):
        return FrozenDict({key: snapshot(item) for key, item in value.items()}, value)
    if isinstance(value, Model):
        data = {name: snapshot(value.__dict__.get(name)) for name in type(value).model_fields}
        return FrozenRecord(data, value, type(value).__name__)
    # Other reactive objects (resources, boxes) have no structural form.
    return value


def snapshot(value: Any) -> Any:
    """Return an immutable view of *value*.

    Plain (non-reactive) values are returned unchanged. Building a snapshot
    never subscribes to anything.
    """
    if not isinstance(value, Reactive):
        return value
    state = value._reactive
    version = state_version(value)
    memo = state.snapshot
    if memo is not None and memo[0] == version:
        return memo[1]
    frozen = _freeze(value)
    state.snapshot = (version, frozen)
    return frozen


def restore(value: Any) -> Any:
    """Return the live value a snapshot was produced from.

    Reactive values without a structural snapshot (resources, boxes) are
    their own snapshot and are returned as they are. Anything else that is
    not a snapshot gives ``None``.
    """
    if isinstance(value, (FrozenList, FrozenDict, FrozenRecord)):
        return value._source
    if isinstance(value, Reactive):
        return value
    return None
