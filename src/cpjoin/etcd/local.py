# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/etcd/local.py

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from cpjoin.config.models import APIEndpoint, ClusterConfiguration
from cpjoin.constants import (
    ETCD_HEALTHY_CHECK_INTERVAL,
    ETCD_HEALTHY_CHECK_RETRIES,
    Component,
)
from cpjoin.errors import ConfigError, UnitWriteError
from cpjoin.etcd.client import EtcdClient, Member, get_client_url, get_peer_url
from cpjoin.initsystem.controller import InitSystem, get_init_system
from cpjoin.initsystem.unit import (
    DEFAULT_UNIT_RESTART_SEC,
    MULTI_USER_TARGET,
    UnitInstall,
    UnitRestartMode,
    UnitService,
    UnitSpec,
    write_unit_to_disk,
)
from cpjoin.observers.console import ConsoleObserver
from cpjoin.observers.dispatcher import EventBus
from cpjoin.observers.events import (
    DryRunAction,
    JoinFailed,
    JoinSkipped,
    JoinSucceeded,
    MemberAnnounced,
    ServiceStarted,
    UnitWritten,
    WaitStarted,
    new_ctx,
)
from cpjoin.utils.execution import ExecutionContext

log = logging.getLogger("cpjoin")


def get_etcd_command(
    cfg: ClusterConfiguration,
    endpoint: APIEndpoint,
    node_name: str,
    initial_cluster: Sequence[Member],
) -> List[str]:
    """
    Build the etcd argv for this node.

    With an empty `initial_cluster` the node starts a cluster of its own;
    otherwise it joins the given members as an existing cluster.
    """
    local = cfg.etcd.local
    if local is None:
        raise ConfigError("etcd command cannot be built for a cluster using external etcd")

    client_url = get_client_url(endpoint)
    peer_url = get_peer_url(endpoint)
    pki = Path(cfg.certificates_dir)

    args = {
        "name": node_name,
        "listen-client-urls": f"https://127.0.0.1:2379,{client_url}",
        "advertise-client-urls": client_url,
        "listen-peer-urls": peer_url,
        "initial-advertise-peer-urls": peer_url,
        "data-dir": local.data_dir,
        "cert-file": str(pki / "etcd" / "server.crt"),
        "key-file": str(pki / "etcd" / "server.key"),
        "trusted-ca-file": str(pki / "etcd" / "ca.crt"),
        "client-cert-auth": "true",
        "peer-cert-file": str(pki / "etcd" / "peer.crt"),
        "peer-key-file": str(pki / "etcd" / "peer.key"),
        "peer-trusted-ca-file": str(pki / "etcd" / "ca.crt"),
        "peer-client-cert-auth": "true",
        "snapshot-count": "10000",
        "listen-metrics-urls": "http://127.0.0.1:2381",
    }

    if initial_cluster:
        args["initial-cluster"] = ",".join(f"{m.name}={m.peer_url}" for m in initial_cluster)
        args["initial-cluster-state"] = "existing"
    else:
        args["initial-cluster"] = f"{node_name}={peer_url}"

    args.update(local.extra_args)

    return [local.binary] + [f"--{k}={v}" for k, v in args.items()]


def get_service_unit_spec(
    cfg: ClusterConfiguration,
    endpoint: APIEndpoint,
    node_name: str,
    initial_cluster: Sequence[Member],
) -> UnitSpec:
    return UnitSpec(
        description="etcd",
        documentation="https://github.com/etcd-io/etcd",
        service=UnitService(
            exec_start_cmd=get_etcd_command(cfg, endpoint, node_name, initial_cluster),
            restart=UnitRestartMode.ALWAYS,
            restart_sec=DEFAULT_UNIT_RESTART_SEC,
        ),
        install=UnitInstall(wanted_by=MULTI_USER_TARGET),
    )


def create_service_unit_file(
    units_dir: str | Path,
    node_name: str,
    cfg: ClusterConfiguration,
    endpoint: APIEndpoint,
) -> Path:
    """Write the unit of the first etcd member of a new local cluster."""
    if cfg.is_external_etcd:
        raise ConfigError("etcd unit file cannot be generated for cluster using external etcd")

    try:
        path = write_unit_to_disk(Component.ETCD, units_dir, get_service_unit_spec(cfg, endpoint, node_name, []))
    except UnitWriteError as exc:
        raise UnitWriteError(f"failed to create service unit file for etcd: {exc}") from exc

    log.debug("[control-plane] wrote service unit for etcd to %s", path)
    return path


def run_service(init_system: Optional[InitSystem] = None) -> None:
    """Start etcd as a host-level service."""
    init_system = init_system or get_init_system()
    init_system.service_start(Component.ETCD.value)


class JoinState(str, Enum):
    START = "Start"
    MEMBER_REGISTERED = "MemberRegistered"
    UNIT_WRITTEN = "UnitWritten"
    SERVICE_STARTED = "ServiceStarted"
    VERIFIED = "Verified"
    DONE = "Done"


class JoinOrchestrator:
    """
    Joins this node as a new member of an existing stacked etcd cluster.

    Order of operations:
      1. announce the member to the cluster (skipped in dry-run)
      2. write the etcd unit with the member list returned by step 1
      3. start the unit (skipped in dry-run)
      4. wait for the cluster to become available again (skipped in dry-run)

    Each step is fatal on error and nothing is rolled back: a failure after
    step 1 leaves the member registered while the local process is not
    running, and the operator has to re-run the join or remove the member.
    """

    def __init__(
        self,
        cfg: ClusterConfiguration,
        endpoint: APIEndpoint,
        node_name: str,
        *,
        units_dir: str | Path,
        certificates_dir: str | Path | None = None,
        execution: ExecutionContext | None = None,
        bus: EventBus | None = None,
        client_factory: Callable[[str, Path], EtcdClient] = EtcdClient.from_endpoint,
        init_system_factory: Callable[[], InitSystem] = get_init_system,
        retries: int = ETCD_HEALTHY_CHECK_RETRIES,
        interval: float = ETCD_HEALTHY_CHECK_INTERVAL,
        run_id: Optional[str] = None,
    ):
        self.cfg = cfg
        self.endpoint = endpoint
        self.node_name = node_name
        self.units_dir = Path(units_dir)
        self.certificates_dir = Path(certificates_dir or cfg.certificates_dir)
        self.execution = execution or ExecutionContext()
        self.bus = bus or EventBus(observers=[ConsoleObserver()])
        self.client_factory = client_factory
        self.init_system_factory = init_system_factory
        self.retries = retries
        self.interval = interval
        self.run_ctx = new_ctx(node=node_name, phase="etcd", run_id=run_id)

        self.state = JoinState.START
        self.members: List[Member] = []
        self.unit: Optional[UnitSpec] = None
        self.unit_path: Optional[Path] = None

    def _emit(self, event_cls, **kw) -> None:
        self.bus.emit(event_cls(**self.run_ctx, **kw))

    def join(self) -> JoinState:
        if self.cfg.is_external_etcd:
            self._emit(JoinSkipped, reason="Skipping local etcd join in external etcd mode")
            self.state = JoinState.DONE
            return self.state

        try:
            return self._join()
        except Exception as exc:
            self._emit(JoinFailed, state=self.state.value, error=str(exc))
            if self.state is not JoinState.START and not self.execution.dry_run:
                log.warning(
                    "etcd member %s is registered in the cluster but the join did not complete; "
                    "re-run the join or remove the member manually",
                    self.node_name,
                )
            raise

    def _join(self) -> JoinState:
        dry_run = self.execution.dry_run

        log.debug("Creating client that connects to etcd cluster")
        client = self.client_factory(get_client_url(self.endpoint), self.certificates_dir)
        peer_url = get_peer_url(self.endpoint)

        # Start -> MemberRegistered
        if dry_run:
            self._emit(DryRunAction, message=f"Would add etcd member: {peer_url}")
            self.members = []
        else:
            log.debug("[etcd] Adding etcd member: %s", peer_url)
            self.members = client.add_member(self.node_name, peer_url)
            log.debug("Updated etcd member list: %s", self.members)
            self._emit(MemberAnnounced, peer_url=peer_url, members=[m.name for m in self.members])
        self.state = JoinState.MEMBER_REGISTERED

        # MemberRegistered -> UnitWritten
        log.info("[etcd] Creating service unit file for %r", Component.ETCD.value)
        self.unit = get_service_unit_spec(self.cfg, self.endpoint, self.node_name, self.members)
        try:
            self.unit_path = write_unit_to_disk(Component.ETCD, self.units_dir, self.unit)
        except UnitWriteError as exc:
            raise UnitWriteError(f"[etcd] failed to create service unit file: {exc}") from exc
        self._emit(UnitWritten, component=Component.ETCD.value, path=str(self.unit_path))
        self.state = JoinState.UNIT_WRITTEN

        if dry_run:
            self._emit(DryRunAction, message="Would start the etcd service")
            self._emit(DryRunAction, message="Would wait for the new etcd member to join the cluster")
            self.state = JoinState.DONE
            self._emit(JoinSucceeded, state=self.state.value)
            return self.state

        # UnitWritten -> ServiceStarted
        init_system = self.init_system_factory()
        run_service(init_system)
        self._emit(ServiceStarted, component=Component.ETCD.value, init_system=init_system.name)
        self.state = JoinState.SERVICE_STARTED

        # ServiceStarted -> Verified
        self._emit(WaitStarted, retries=self.retries, interval_s=self.interval)
        client.wait_for_cluster_available(self.retries, self.interval)
        self.state = JoinState.VERIFIED
        self._emit(JoinSucceeded, state=self.state.value)
        return self.state


def run_stacked_etcd_service(
    units_dir: str | Path,
    node_name: str,
    cfg: ClusterConfiguration,
    endpoint: APIEndpoint,
    is_dry_run: bool,
    certificates_dir: str | Path,
    bus: EventBus | None = None,
) -> JoinState:
    """
    Write the etcd unit for an additional member joining an existing stacked
    etcd cluster and run the service. The other members are told about the new
    node beforehand.
    """
    return JoinOrchestrator(
        cfg,
        endpoint,
        node_name,
        units_dir=units_dir,
        certificates_dir=certificates_dir,
        execution=ExecutionContext(dry_run=is_dry_run),
        bus=bus,
    ).join()
