from __future__ import annotations

import pytest

from pyquerycache.config import QueryClientConfig
from pyquerycache.exceptions import ConfigError
from pyquerycache.policy import FetchPolicy, should_adopt_cached, should_fetch_after_adopt, uses_shared_cache


def test_defaults() -> None:
    config = QueryClientConfig()
    assert config.default_fetch_policy is FetchPolicy.CACHE_FIRST
    assert config.log_fetch_errors is True


def test_policy_string_is_parsed() -> None:
    assert QueryClientConfig(default_fetch_policy=" Cache-Only ").default_fetch_policy is FetchPolicy.CACHE_ONLY  # type: ignore[arg-type]
    with pytest.raises(ConfigError):
        QueryClientConfig(default_fetch_policy="sometimes")  # type: ignore[arg-type]


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYQUERYCACHE_DEFAULT_FETCH_POLICY", "network-only")
    monkeypatch.setenv("PYQUERYCACHE_LOG_FETCH_ERRORS", "off")

    config = QueryClientConfig.from_env()

    assert config.default_fetch_policy is FetchPolicy.NETWORK_ONLY
    assert config.log_fetch_errors is False


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYQUERYCACHE_DEFAULT_FETCH_POLICY", "network-only")
    monkeypatch.setenv("PYQUERYCACHE_LOG_FETCH_ERRORS", "garbage")

    config = QueryClientConfig.from_env(default_fetch_policy=FetchPolicy.NO_CACHE)

    assert config.default_fetch_policy is FetchPolicy.NO_CACHE
    # Unparseable booleans fall back to the default.
    assert config.log_fetch_errors is True


def test_from_env_rejects_unknown_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYQUERYCACHE_DEFAULT_FETCH_POLICY", "whenever")
    with pytest.raises(ConfigError):
        QueryClientConfig.from_env()


@pytest.mark.parametrize(
    ("policy", "is_ready", "has_data", "expected"),
    [
        (FetchPolicy.CACHE_FIRST, True, True, True),
        (FetchPolicy.CACHE_FIRST, False, True, False),
        (FetchPolicy.CACHE_AND_NETWORK, True, True, True),
        (FetchPolicy.NETWORK_ONLY, True, True, False),
        (FetchPolicy.NO_CACHE, True, True, True),
        (FetchPolicy.CACHE_ONLY, False, True, True),
        (FetchPolicy.CACHE_ONLY, False, False, False),
    ],
)
def test_should_adopt_cached(policy: FetchPolicy, is_ready: bool, has_data: bool, expected: bool) -> None:
    assert should_adopt_cached(policy=policy, is_ready=is_ready, has_data=has_data) is expected


def test_policy_helpers() -> None:
    assert not uses_shared_cache(FetchPolicy.NO_CACHE)
    assert uses_shared_cache(FetchPolicy.CACHE_FIRST)
    assert should_fetch_after_adopt(FetchPolicy.CACHE_AND_NETWORK)
    assert not should_fetch_after_adopt(FetchPolicy.CACHE_FIRST)
