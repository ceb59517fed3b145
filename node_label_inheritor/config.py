"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from node_label_inheritor.constants import DEFAULT_LEADER_ELECTION_ID
from node_label_inheritor.models.config import (
    ControllerConfig,
    InheritorConfig,
    LogConfig,
    ManagerConfig,
)

_BIND_ADDRESS = re.compile(r"^(?P<host>\[[0-9a-fA-F:]+\]|[^:\s]*):(?P<port>[0-9]{1,5})$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"NLI_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def parse_bind_address(value: str) -> tuple[str, int] | None:
    """Split ``host:port`` into its parts.

    ``"0"`` disables the endpoint and returns None.  An empty host binds every
    interface.

    Raises:
        ValueError: the address is not of the form ``[host]:port``.
    """
    if value == "0":
        return None
    match = _BIND_ADDRESS.match(value)
    if match is None:
        raise ValueError(f"Invalid bind address: {value!r}")
    port = int(match.group("port"))
    if port > 65535:
        raise ValueError(f"Invalid port in bind address: {value!r}")
    host = match.group("host").strip("[]") or "0.0.0.0"
    return host, port


def _validate_bind_address(value: str) -> str:
    parse_bind_address(value)
    return value


def load_config() -> InheritorConfig:
    """Load configuration from NLI_* environment variables."""
    return InheritorConfig(
        manager=ManagerConfig(
            metrics_bind_address=_validate_bind_address(_env("METRICS_BIND_ADDRESS", ":8080")),
            health_probe_bind_address=_validate_bind_address(_env("HEALTH_PROBE_BIND_ADDRESS", ":8081")),
            leader_election=_env_bool("LEADER_ELECT", False),
            leader_election_id=_env("LEADER_ELECTION_ID", DEFAULT_LEADER_ELECTION_ID),
            leader_election_namespace=_env("LEADER_ELECTION_NAMESPACE", ""),
        ),
        controller=ControllerConfig(
            workers=_env_int("WORKERS", 2, min_val=1, max_val=64),
            reconcile_timeout_seconds=_env_float("RECONCILE_TIMEOUT", 30.0, min_val=1.0),
            resync_period_seconds=_env_float("RESYNC_PERIOD", 600.0, min_val=10.0),
            watch_namespace=_env("WATCH_NAMESPACE", ""),
            watch_nodes=_env_bool("WATCH_NODES", True),
            backoff_base_seconds=_env_float("BACKOFF_BASE", 0.005, min_val=0.001),
            backoff_max_seconds=_env_float("BACKOFF_MAX", 300.0, min_val=1.0),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            development=_env_bool("LOG_DEVELOPMENT", False),
        ),
    )
