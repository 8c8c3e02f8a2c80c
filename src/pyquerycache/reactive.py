"""Explicit observer registry for cached values.

Every mutable value the cache hands out (entity instances, result
containers, resources, queries) exposes ``subscribe(on_change)`` which
returns an unsubscribe callable. There is no implicit dependency tracking:
whoever needs to react to a value subscribes to it and is responsible for
unsubscribing.

Changes propagate upwards. A reactive value remembers (weakly) the reactive
containers it was placed into; when it changes, every container that still
holds it is marked as changed too. All affected versions are bumped before
any subscriber runs, so a subscriber always reads current snapshots.

Inside :func:`batch` versions are still bumped right away, but subscribers
run only once the outermost batch exits, at most once per changed value::

    with batch():
        user.name = "Alice"
        user.email = "alice@example.com"
"""

from __future__ import annotations

import contextlib
import itertools
import weakref
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Generic, SupportsIndex, TypeVar

T = TypeVar("T")

OnChange = Callable[[], None]
Unsubscribe = Callable[[], None]

_subscription_ids = itertools.count(1)


class _Batch:
    __slots__ = ("depth", "pending")

    def __init__(self) -> None:
        self.depth = 0
        # Changed values waiting for their subscribers to run, in change order.
        self.pending: dict[int, Reactive] = {}


_batch = _Batch()


@contextlib.contextmanager
def batch() -> Iterator[None]:
    """Hold back subscriber callbacks until the outermost batch exits.

    Values changed again by a callback while pending are notified once.
    """
    _batch.depth += 1
    try:
        yield
    finally:
        if _batch.depth > 1:
            _batch.depth -= 1
        else:
            try:
                _flush()
            finally:
                _batch.depth = 0
                _batch.pending.clear()


def _flush() -> None:
    pending = _batch.pending
    while pending:
        node = pending.pop(next(iter(pending)))
        for callback in list(node._reactive.subscribers.values()):
            callback()


class ReactiveState:
    """Bookkeeping attached to every reactive value."""

    __slots__ = ("subscribers", "parents", "version", "snapshot")

    def __init__(self) -> None:
        self.subscribers: dict[int, OnChange] = {}
        self.parents: weakref.WeakValueDictionary[int, Reactive] = weakref.WeakValueDictionary()
        self.version = 0
        # (version, frozen value) memo owned by pyquerycache.snapshot
        self.snapshot: tuple[int, Any] | None = None


class Reactive:
    """Mixin implementing subscription, versioning and change propagation.

    Subclasses must set ``self._reactive = ReactiveState()`` before use
    (pydantic models declare it as a private attribute instead).
    """

    __slots__ = ()

    @property
    def observer_count(self) -> int:
        """Number of external subscribers (parent links are not counted)."""
        return len(self._reactive.subscribers)

    @property
    def is_observed(self) -> bool:
        return bool(self._reactive.subscribers)

    def subscribe(self, on_change: OnChange) -> Unsubscribe:
        """Call *on_change* after every change of this value.

        The first subscription triggers ``_on_become_observed``; dropping the
        last one triggers ``_on_become_unobserved``. If activation raises,
        the subscription is not kept and the error propagates.
        """
        state = self._reactive
        key = next(_subscription_ids)
        first = not state.subscribers
        state.subscribers[key] = on_change
        if first:
            try:
                self._on_become_observed()
            except BaseException:
                state.subscribers.pop(key, None)
                raise

        def unsubscribe() -> None:
            if state.subscribers.pop(key, None) is not None and not state.subscribers:
                self._on_become_unobserved()

        return unsubscribe

    def _on_become_observed(self) -> None:
        """Hook: first subscriber attached."""

    def _on_become_unobserved(self) -> None:
        """Hook: last subscriber detached."""

    def _holds(self, child: Reactive) -> bool:
        """Whether *child* is still directly contained in this value."""
        return False

    def _changed(self) -> None:
        with batch():
            affected: list[Reactive] = []
            self._collect_changed(affected, set())
            for node in affected:
                _batch.pending.setdefault(id(node), node)

    def _collect_changed(self, affected: list[Reactive], seen: set[int]) -> None:
        if id(self) in seen:
            return
        seen.add(id(self))
        state = self._reactive
        state.version += 1
        affected.append(self)
        for key, parent in list(state.parents.items()):
            if parent._holds(self):
                parent._collect_changed(affected, seen)
            else:
                # Child was removed from that container since the link was made.
                state.parents.pop(key, None)


def link(child: Any, parent: Reactive) -> None:
    """Record that *parent* contains *child* (no-op for plain values)."""
    if isinstance(child, Reactive):
        child._reactive.parents[id(parent)] = parent


def state_version(value: Reactive) -> int:
    return value._reactive.version


def make_reactive(value: Any, parent: Reactive | None = None) -> Any:
    """Convert plain containers into reactive ones, recursively.

    ``list`` becomes :class:`ReactiveList` and ``dict`` becomes
    :class:`ReactiveDict`; reactive values are returned as they are.
    Tuples, sets and scalars are opaque values and are left untouched.
    When *parent* is given the result is linked to it.
    """
    if isinstance(value, Reactive):
        result = value
    elif isinstance(value, list):
        result = ReactiveList(value)
    elif isinstance(value, dict):
        result = ReactiveDict(value)
    else:
        return value
    if parent is not None:
        link(result, parent)
    return result


class ReactiveList(Reactive, list):
    """A ``list`` that reports every mutation to its subscribers and parents."""

    def __init__(self, iterable: Iterable[Any] = ()) -> None:
        self._reactive = ReactiveState()
        super().__init__(make_reactive(item, self) for item in iterable)

    def _holds(self, child: Reactive) -> bool:
        return any(item is child for item in self)

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            value = [make_reactive(item, self) for item in value]
        else:
            value = make_reactive(value, self)
        super().__setitem__(index, value)
        self._changed()

    def __delitem__(self, index: Any) -> None:
        super().__delitem__(index)
        self._changed()

    def __iadd__(self, other: Iterable[Any]) -> ReactiveList:  # type: ignore[override]
        self.extend(other)
        return self

    def __imul__(self, count: SupportsIndex) -> ReactiveList:  # type: ignore[override]
        super().__imul__(count)
        self._changed()
        return self

    def append(self, value: Any) -> None:
        super().append(make_reactive(value, self))
        self._changed()

    def extend(self, values: Iterable[Any]) -> None:
        super().extend(make_reactive(item, self) for item in values)
        self._changed()

    def insert(self, index: SupportsIndex, value: Any) -> None:
        super().insert(index, make_reactive(value, self))
        self._changed()

    def pop(self, index: SupportsIndex = -1) -> Any:
        item = super().pop(index)
        self._changed()
        return item

    def remove(self, value: Any) -> None:
        super().remove(value)
        self._changed()

    def clear(self) -> None:
        if not self:
            return
        super().clear()
        self._changed()

    def sort(self, *, key: Callable[[Any], Any] | None = None, reverse: bool = False) -> None:
        super().sort(key=key, reverse=reverse)
        self._changed()

    def reverse(self) -> None:
        super().reverse()
        self._changed()


class ReactiveDict(Reactive, dict):
    """A ``dict`` that reports every mutation to its subscribers and parents."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._reactive = ReactiveState()
        super().__init__()
        for key, value in dict(*args, **kwargs).items():
            dict.__setitem__(self, key, make_reactive(value, self))

    def _holds(self, child: Reactive) -> bool:
        return any(value is child for value in self.values())

    def __setitem__(self, key: Any, value: Any) -> None:
        super().__setitem__(key, make_reactive(value, self))
        self._changed()

    def __delitem__(self, key: Any) -> None:
        super().__delitem__(key)
        self._changed()

    def __ior__(self, other: Any) -> ReactiveDict:  # type: ignore[override]
        self.update(other)
        return self

    def pop(self, key: Any, *default: Any) -> Any:
        present = key in self
        value = super().pop(key, *default)
        if present:
            self._changed()
        return value

    def popitem(self) -> tuple[Any, Any]:
        item = super().popitem()
        self._changed()
        return item

    def clear(self) -> None:
        if not self:
            return
        super().clear()
        self._changed()

    def setdefault(self, key: Any, default: Any = None) -> Any:
        if key in self:
            return self[key]
        self[key] = default
        return self[key]

    def update(self, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        incoming = dict(*args, **kwargs)
        if not incoming:
            return
        for key, value in incoming.items():
            dict.__setitem__(self, key, make_reactive(value, self))
        self._changed()


class Box(Reactive, Generic[T]):
    """A single reactive cell, typically used as a query's params source."""

    def __init__(self, value: T) -> None:
        self._reactive = ReactiveState()
        self._value = value

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value is self._value:
            return
        self._value = value
        self._changed()

    def __repr__(self) -> str:
        return f"Box({self._value!r})"


class Computed(Reactive, Generic[T]):
    """A derived value.

    ``get()`` evaluates *fn* on every call. While the computed value is
    observed it subscribes to *deps* and reports their changes as its own.
    """

    def __init__(self, fn: Callable[[], T], *deps: Reactive) -> None:
        self._reactive = ReactiveState()
        self._fn = fn
        self._deps = deps
        self._unsubscribers: list[Unsubscribe] = []

    def get(self) -> T:
        return self._fn()

    def _on_become_observed(self) -> None:
        self._unsubscribers = [dep.subscribe(self._changed) for dep in self._deps]

    def _on_become_unobserved(self) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()
