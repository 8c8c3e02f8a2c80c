"""Per-model identity map.

This is the only component allowed to merge parsed entity data into live
instances. For a given entity class and identity key at most one live
instance exists; data parsed later for the same key is assigned onto that
instance instead of replacing it, so every cached result referencing the
entity observes the update.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from pyquerycache.models import Entity
from pyquerycache.reactive import Reactive, ReactiveState

_logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class EntityStore(Reactive, Generic[E]):
    """Identity map from cache key to the live instance of one entity class.

    Subscribers are notified when a new key is registered; changes of the
    instances themselves are reported by the instances.
    """

    def __init__(self, model: type[E]) -> None:
        self._reactive = ReactiveState()
        self.model = model
        self._instances: dict[str, E] = {}

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> Iterator[E]:
        return iter(list(self._instances.values()))

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in self._instances
        if isinstance(key, (Mapping, BaseModel)):
            return self.model.cache_key_for(key) in self._instances
        return False

    def get(self, key: Mapping[str, Any] | BaseModel) -> E | None:
        """Live instance for an identity key, or ``None``."""
        return self._instances.get(self.model.cache_key_for(key))

    def merge(self, incoming: E) -> E:
        """Return the live instance for *incoming*'s key, updated from it."""
        cache_key = incoming.cache_key
        existing = self._instances.get(cache_key)
        if existing is None:
            self._instances[cache_key] = incoming
            _logger.debug("Registered %s %s", self.model.__name__, cache_key)
            self._changed()
            return incoming
        if existing is not incoming:
            existing.assign_from(incoming)
        return existing

    def register(self, instance: E) -> E:
        """Make *instance* the live instance for its key, replacing any other."""
        self._instances[instance.cache_key] = instance
        self._changed()
        return instance
