"""Configuration containers for the pooled Ethereum client."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from ..constants import (
    CONNECTIVITY_MARKERS,
    DEFAULT_ATTEMPTS_PER_ENDPOINT,
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_ENDPOINTS,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_INNER_ATTEMPTS,
    DEFAULT_INNER_BACKOFF,
    DEFAULT_OUTER_BACKOFF,
    DEFAULT_POOL_CAPACITY,
    DEFAULT_POOL_INIT,
    DEFAULT_RECEIPT_ATTEMPTS,
    DEFAULT_RECEIPT_BACKOFF,
    DEFAULT_REQUEST_TIMEOUT,
    TRANSIENT_MARKERS,
)
from ..exceptions import ValidationError

ENV_PREFIX = "ETH_CLIENT_"


@dataclass(frozen=True)
class RetryPolicy:
    """Outer (cross-endpoint) and inner (same connection) retry settings."""

    attempts_per_endpoint: int = DEFAULT_ATTEMPTS_PER_ENDPOINT
    outer_backoff: float = DEFAULT_OUTER_BACKOFF
    inner_attempts: int = DEFAULT_INNER_ATTEMPTS
    inner_backoff: float = DEFAULT_INNER_BACKOFF
    connectivity_markers: tuple[str, ...] = CONNECTIVITY_MARKERS
    transient_markers: tuple[str, ...] = TRANSIENT_MARKERS

    def outer_attempts(self, endpoint_count: int) -> int:
        """Every endpoint gets ``attempts_per_endpoint`` chances."""

        return max(1, endpoint_count) * max(1, self.attempts_per_endpoint)


@dataclass(frozen=True)
class ClientConfig:
    """Aggregated configuration used to construct :class:`EthClient`."""

    endpoints: tuple[str, ...] = DEFAULT_ENDPOINTS
    pool_size: int = DEFAULT_POOL_CAPACITY
    pool_init: int = DEFAULT_POOL_INIT
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    call_timeout: float = DEFAULT_CALL_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    private_key: str | None = field(default=None, repr=False)
    retry: RetryPolicy = RetryPolicy()
    receipt_attempts: int = DEFAULT_RECEIPT_ATTEMPTS
    receipt_backoff: float = DEFAULT_RECEIPT_BACKOFF
    logger: logging.Logger | None = field(default=None, compare=False)

    def with_defaults(self) -> ClientConfig:
        """Return a copy with pool sizing normalised the way the pool does it."""

        if not self.endpoints:
            raise ValidationError("At least one endpoint is required", field="endpoints")

        pool_size = self.pool_size if self.pool_size > 0 else DEFAULT_POOL_CAPACITY
        pool_init = min(max(self.pool_init, 0), pool_size)
        idle_timeout = self.idle_timeout if self.idle_timeout > 0 else DEFAULT_IDLE_TIMEOUT
        call_timeout = self.call_timeout if self.call_timeout > 0 else DEFAULT_CALL_TIMEOUT

        return replace(
            self,
            endpoints=tuple(url.rstrip("/") for url in self.endpoints),
            pool_size=pool_size,
            pool_init=pool_init,
            idle_timeout=idle_timeout,
            call_timeout=call_timeout,
        )


def load_config(path: str | Path, *, environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Load a TOML configuration file and apply ``ETH_CLIENT_*`` overrides.

    Layout::

        [json_rpc]
        http_addrs = ["http://localhost:8881", "http://localhost:8882"]

        [pool]
        size = 4
        init = 1
        idle_timeout = 360
        call_timeout = 10

        [retry]
        attempts_per_endpoint = 2
        outer_backoff = 1.0

    An empty or missing endpoint list falls back to the local defaults.
    Environment overrides use upper-cased ``<TABLE>_<KEY>`` names, e.g.
    ``ETH_CLIENT_POOL_SIZE=8`` or ``ETH_CLIENT_JSON_RPC_HTTP_ADDRS=a,b``.
    """

    config_path = Path(path)
    try:
        with config_path.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ValidationError(
            "Config file not found", field="path", value=str(config_path)
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Config file is not valid TOML",
            field="path",
            value=str(config_path),
            details={"error": str(exc)},
        ) from exc

    env = os.environ if environ is None else environ
    _apply_env_overrides(document, env)

    json_rpc = document.get("json_rpc", {})
    pool = document.get("pool", {})
    retry = document.get("retry", {})

    endpoints = _as_endpoint_list(json_rpc.get("http_addrs")) or DEFAULT_ENDPOINTS

    try:
        policy = RetryPolicy(
            attempts_per_endpoint=int(retry.get("attempts_per_endpoint", DEFAULT_ATTEMPTS_PER_ENDPOINT)),
            outer_backoff=float(retry.get("outer_backoff", DEFAULT_OUTER_BACKOFF)),
            inner_attempts=int(retry.get("inner_attempts", DEFAULT_INNER_ATTEMPTS)),
            inner_backoff=float(retry.get("inner_backoff", DEFAULT_INNER_BACKOFF)),
        )
        config = ClientConfig(
            endpoints=tuple(endpoints),
            pool_size=int(pool.get("size", DEFAULT_POOL_CAPACITY)),
            pool_init=int(pool.get("init", DEFAULT_POOL_INIT)),
            idle_timeout=float(pool.get("idle_timeout", DEFAULT_IDLE_TIMEOUT)),
            call_timeout=float(pool.get("call_timeout", DEFAULT_CALL_TIMEOUT)),
            request_timeout=float(pool.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
            retry=policy,
        )
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Config file contains an invalid value",
            field="path",
            value=str(config_path),
            details={"error": str(exc)},
        ) from exc

    return config.with_defaults()


def _apply_env_overrides(document: dict[str, Any], env: Mapping[str, str]) -> None:
    for table in ("json_rpc", "pool", "retry"):
        prefix = f"{ENV_PREFIX}{table.upper()}_"
        for name, raw in env.items():
            if not name.startswith(prefix):
                continue
            key = name[len(prefix) :].lower()
            document.setdefault(table, {})[key] = raw


def _as_endpoint_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]
