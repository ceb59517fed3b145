"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from node_label_inheritor.constants import DEFAULT_LEADER_ELECTION_ID


@dataclass
class ManagerConfig:
    """Process-level endpoints and leader election."""

    metrics_bind_address: str = ":8080"
    health_probe_bind_address: str = ":8081"
    leader_election: bool = False
    leader_election_id: str = DEFAULT_LEADER_ELECTION_ID
    leader_election_namespace: str = ""
    lease_duration_seconds: float = 15.0
    renew_deadline_seconds: float = 10.0
    retry_period_seconds: float = 2.0


@dataclass
class ControllerConfig:
    """Reconciliation loop tuning."""

    workers: int = 2
    reconcile_timeout_seconds: float = 30.0
    resync_period_seconds: float = 600.0
    watch_namespace: str = ""
    watch_nodes: bool = True
    backoff_base_seconds: float = 0.005
    backoff_max_seconds: float = 300.0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    development: bool = False


@dataclass
class InheritorConfig:
    """Top-level node-label-inheritor configuration."""

    manager: ManagerConfig = field(default_factory=ManagerConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    log: LogConfig = field(default_factory=LogConfig)
