"""Client configuration for pyquerycache."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyquerycache.exceptions import ConfigError
from pyquerycache.policy import FetchPolicy


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_policy(value: Any) -> FetchPolicy:
    if isinstance(value, FetchPolicy):
        return value
    try:
        return FetchPolicy(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(p.value for p in FetchPolicy)
        raise ConfigError(f"Unknown fetch policy {value!r} (expected one of: {allowed})") from exc


@dataclasses.dataclass(frozen=True)
class QueryClientConfig:
    """Client configuration.

    Parameters
    ----------
    default_fetch_policy : FetchPolicy
        Policy used by queries that do not pass ``fetch_policy``
        explicitly. Defaults to ``cache-first``.
    log_fetch_errors : bool
        Log failed resource fetches (at debug level, with traceback).
        Failures are still published through ``Resource.error`` either way.
    """

    default_fetch_policy: FetchPolicy = FetchPolicy.CACHE_FIRST
    log_fetch_errors: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "default_fetch_policy", _parse_policy(self.default_fetch_policy))

    @classmethod
    def from_env(cls, **overrides: Any) -> QueryClientConfig:
        """Create configuration from environment variables.

        Reads ``PYQUERYCACHE_DEFAULT_FETCH_POLICY`` and
        ``PYQUERYCACHE_LOG_FETCH_ERRORS``. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        QueryClientConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        policy_env = env.get("PYQUERYCACHE_DEFAULT_FETCH_POLICY")
        if policy_env is not None and "default_fetch_policy" not in overrides:
            config_kwargs["default_fetch_policy"] = _parse_policy(policy_env)

        if "log_fetch_errors" not in overrides:
            config_kwargs["log_fetch_errors"] = _env_bool(env.get("PYQUERYCACHE_LOG_FETCH_ERRORS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
