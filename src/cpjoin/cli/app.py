# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/cli/app.py
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List, Optional

import typer

from cpjoin.config.loader import load_config
from cpjoin.config.models import JoinConfiguration
from cpjoin.constants import (
    CONTROL_PLANE_COMPONENTS,
    ETCD_HEALTHY_CHECK_INTERVAL,
    ETCD_HEALTHY_CHECK_RETRIES,
    Component,
)
from cpjoin.controlplane.units import create_service_unit_files, run_services
from cpjoin.errors import ConfigError, CpjoinError
from cpjoin.etcd.health import new_core_api
from cpjoin.etcd.local import JoinOrchestrator
from cpjoin.initsystem.controller import get_init_system
from cpjoin.logging.log import init_logging
from cpjoin.observers.console import ConsoleObserver
from cpjoin.observers.dispatcher import EventBus
from cpjoin.observers.logger import LoggerObserver
from cpjoin.phases.check_etcd import JoinData, run_check_etcd_phase
from cpjoin.servicehosting.local_config import (
    LocalConfig,
    ServiceHostingStore,
    mark_control_plane_as_service_hosted,
)
from cpjoin.utils.execution import ExecutionContext


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Join a node to a stacked etcd control plane and manage its host services")


def _fail(exc: Exception) -> None:
    typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _setup(verbose: bool):
    logger, run_id, _ = init_logging(verbose=verbose)
    bus = EventBus(observers=[ConsoleObserver(), LoggerObserver(logger)])
    return run_id, bus


def _load(config: Path) -> JoinConfiguration:
    cfg = load_config(config)
    if cfg.control_plane is None:
        raise ConfigError(f"{config}: control_plane endpoint is required for this command")
    return cfg


def _parse_components(names: List[str]) -> List[Component]:
    try:
        return [Component(n) for n in names]
    except ValueError as exc:
        raise typer.BadParameter(
            f"{exc}. Valid components: {', '.join(c.value for c in Component)}"
        ) from exc


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("join-etcd")
def join_etcd(
    config: Path = typer.Option(..., "--config", "-c", exists=True, help="Join configuration YAML"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not change cluster membership or start services"),
    units_dir: Optional[Path] = typer.Option(None, "--units-dir", help="Override the unit directory"),
    retries: int = typer.Option(ETCD_HEALTHY_CHECK_RETRIES, "--retries", min=1),
    interval: float = typer.Option(ETCD_HEALTHY_CHECK_INTERVAL, "--interval", min=0),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Announce this node to the etcd cluster, write its unit and start it."""
    run_id, bus = _setup(verbose)
    try:
        cfg = _load(config)
        dry_run = dry_run or cfg.dry_run
        target_dir = units_dir or cfg.units_dir
        if dry_run and units_dir is None:
            # never touch the real unit directory in dry-run
            target_dir = Path(tempfile.mkdtemp(prefix="cpjoin-dryrun-"))
            typer.echo(f"[dryrun] Writing units to {target_dir}")

        state = JoinOrchestrator(
            cfg.cluster,
            cfg.control_plane,
            cfg.node_name,
            units_dir=target_dir,
            execution=ExecutionContext(dry_run=dry_run),
            bus=bus,
            retries=retries,
            interval=interval,
            run_id=run_id,
        ).join()
    except CpjoinError as exc:
        _fail(exc)
    typer.echo(f"join finished: {state.value}")


@app.command("write-units")
def write_units(
    components: List[str] = typer.Argument(None, help="Control-plane components (default: all)"),
    config: Path = typer.Option(..., "--config", "-c", exists=True),
    units_dir: Optional[Path] = typer.Option(None, "--units-dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Write the unit files of the control-plane components."""
    _setup(verbose)
    selected = _parse_components(components) if components else list(CONTROL_PLANE_COMPONENTS)
    try:
        cfg = _load(config)
        paths = create_service_unit_files(units_dir or cfg.units_dir, cfg.cluster, cfg.control_plane, *selected)
    except CpjoinError as exc:
        _fail(exc)
    for p in paths:
        typer.echo(f"[control-plane] wrote {p}")


@app.command("start")
def start(
    components: List[str] = typer.Argument(..., help="Components to start"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Start (and enable) the units of the given components."""
    _setup(verbose)
    selected = _parse_components(components)
    try:
        run_services(*selected, init_system=get_init_system())
    except CpjoinError as exc:
        _fail(exc)


@app.command("status")
def status(
    components: List[str] = typer.Argument(None, help="Components to query (default: all)"),
):
    """Show the init-system state of each component."""
    selected = _parse_components(components) if components else list(Component)
    try:
        init_system = get_init_system()
    except CpjoinError as exc:
        _fail(exc)
    for c in selected:
        typer.echo(f"{c.value:<26} {init_system.service_status(c.value).value}")


@app.command("check-etcd")
def check_etcd(
    config: Path = typer.Option(..., "--config", "-c", exists=True),
    kubeconfig: Optional[Path] = typer.Option(None, "--kubeconfig", help="Used to discover etcd pods"),
    context: Optional[str] = typer.Option(None, "--context"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """One-shot health check of the etcd cluster this node joins."""
    _, bus = _setup(verbose)
    try:
        cfg = load_config(config)
        data = JoinData(
            node_name=cfg.node_name,
            control_plane=cfg.control_plane is not None,
            cluster=cfg.cluster,
            certificates_dir=cfg.cluster.certificates_dir,
            service_hosting=cfg.service_hosting or ServiceHostingStore().is_service_hosted(),
            discovery_endpoint=cfg.discovery_endpoint,
            core_api_factory=lambda: new_core_api(kubeconfig, context),
        )
        run_check_etcd_phase(data, bus=bus)
    except CpjoinError as exc:
        _fail(exc)


@app.command("mark-service-hosted")
def mark_service_hosted(
    endpoint: str = typer.Option(..., "--endpoint", help="API server advertise address endpoint (host:port)"),
    path: Optional[Path] = typer.Option(None, "--path", help="Override the marker file location"),
):
    """Record that this node's control plane runs as host services."""
    try:
        target = mark_control_plane_as_service_hosted(
            LocalConfig(kube_apiserver_advertise_address_endpoint=endpoint), path
        )
    except CpjoinError as exc:
        _fail(exc)
    typer.echo(f"[service-hosting] wrote {target}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
