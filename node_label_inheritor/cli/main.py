"""Click commands.  Flags override the NLI_* environment configuration."""

from __future__ import annotations

import asyncio

import click

from node_label_inheritor import __version__
from node_label_inheritor.config import load_config, parse_bind_address
from node_label_inheritor.models.config import InheritorConfig


def _check_bind_address(_ctx: click.Context, _param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        parse_bind_address(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    return value


def apply_overrides(
    config: InheritorConfig,
    metrics_bind_address: str | None = None,
    health_probe_bind_address: str | None = None,
    leader_elect: bool | None = None,
    workers: int | None = None,
    namespace: str | None = None,
    log_level: str | None = None,
    zap_devel: bool | None = None,
) -> InheritorConfig:
    """Apply explicitly given command-line values on top of *config*."""
    if metrics_bind_address is not None:
        config.manager.metrics_bind_address = metrics_bind_address
    if health_probe_bind_address is not None:
        config.manager.health_probe_bind_address = health_probe_bind_address
    if leader_elect is not None:
        config.manager.leader_election = leader_elect
    if workers is not None:
        config.controller.workers = workers
    if namespace is not None:
        config.controller.watch_namespace = namespace
    if log_level is not None:
        config.log.level = log_level
    if zap_devel is not None:
        config.log.development = zap_devel
    return config


@click.group()
def cli() -> None:
    """Keep pod labels in sync with the labels of the node they run on."""


@cli.command()
@click.option(
    "--metrics-bind-address",
    default=None,
    callback=_check_bind_address,
    help="The address the metric endpoint binds to. '0' disables it. [default: :8080]",
)
@click.option(
    "--health-probe-bind-address",
    default=None,
    callback=_check_bind_address,
    help="The address the probe endpoint binds to. [default: :8081]",
)
@click.option(
    "--leader-elect/--no-leader-elect",
    default=None,
    help="Enable leader election for the controller. "
    "Enabling this will ensure there is only one active controller.",
)
@click.option("--workers", type=click.IntRange(1, 64), default=None, help="Concurrent reconcile workers.")
@click.option("--namespace", default=None, help="Only watch pods in this namespace. [default: all]")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
)
@click.option("--zap-devel/--no-zap-devel", default=None, help="Human-readable console logs.")
def run(
    metrics_bind_address: str | None,
    health_probe_bind_address: str | None,
    leader_elect: bool | None,
    workers: int | None,
    namespace: str | None,
    log_level: str | None,
    zap_devel: bool | None,
) -> None:
    """Run the controller until SIGTERM/SIGINT."""
    from node_label_inheritor.app import main

    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc

    config = apply_overrides(
        config,
        metrics_bind_address=metrics_bind_address,
        health_probe_bind_address=health_probe_bind_address,
        leader_elect=leader_elect,
        workers=workers,
        namespace=namespace,
        log_level=log_level.lower() if log_level else None,
        zap_devel=zap_devel,
    )
    exit_code = asyncio.run(main(config))
    if exit_code:
        raise SystemExit(exit_code)


@cli.command()
def version() -> None:
    """Print the version and exit."""
    click.echo(__version__)
