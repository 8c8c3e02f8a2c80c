"""Fetch policy decisions.

This module intentionally contains *no* resource or query state handling.
It only answers the two questions a query asks when it binds to a resource:
may the cached data be published right away, and must the network still be
hit afterwards.
"""

from __future__ import annotations

from enum import StrEnum


class FetchPolicy(StrEnum):
    CACHE_FIRST = "cache-first"
    CACHE_ONLY = "cache-only"
    CACHE_AND_NETWORK = "cache-and-network"
    NETWORK_ONLY = "network-only"
    NO_CACHE = "no-cache"


def uses_shared_cache(policy: FetchPolicy) -> bool:
    """Whether the query resolves resources through the endpoint's shared map."""
    return policy != FetchPolicy.NO_CACHE


def should_adopt_cached(*, policy: FetchPolicy, is_ready: bool, has_data: bool) -> bool:
    """Decide whether a freshly bound resource's data is published immediately.

    Policy:
    - ``cache-only`` trusts any data present, observed or not.
    - Every other policy except ``network-only`` trusts data only when the
      resource is ready (observed, not loading, data present).
    """
    if policy == FetchPolicy.CACHE_ONLY:
        return has_data or is_ready
    return is_ready and policy != FetchPolicy.NETWORK_ONLY


def should_fetch_after_adopt(policy: FetchPolicy) -> bool:
    """Only ``cache-and-network`` still goes to the network after a cache hit."""
    return policy == FetchPolicy.CACHE_AND_NETWORK
