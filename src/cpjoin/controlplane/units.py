# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/controlplane/units.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from cpjoin.config.models import APIEndpoint, ClusterConfiguration
from cpjoin.constants import KUBERNETES_DIR, Component
from cpjoin.errors import ConfigError, UnitWriteError
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

log = logging.getLogger("cpjoin")

KUBERNETES_DOCS = "https://github.com/kubernetes/kubernetes"


def _etcd_flags(cfg: ClusterConfiguration) -> List[str]:
    pki = Path(cfg.certificates_dir)
    if cfg.etcd.external is not None:
        ext = cfg.etcd.external
        return [
            f"--etcd-servers={','.join(ext.endpoints)}",
            f"--etcd-cafile={ext.ca_file}",
            f"--etcd-certfile={ext.cert_file}",
            f"--etcd-keyfile={ext.key_file}",
        ]
    return [
        "--etcd-servers=https://127.0.0.1:2379",
        f"--etcd-cafile={pki / 'etcd' / 'ca.crt'}",
        f"--etcd-certfile={pki / 'apiserver-etcd-client.crt'}",
        f"--etcd-keyfile={pki / 'apiserver-etcd-client.key'}",
    ]


def get_apiserver_command(cfg: ClusterConfiguration, endpoint: APIEndpoint) -> List[str]:
    pki = Path(cfg.certificates_dir)
    return [
        "kube-apiserver",
        f"--advertise-address={endpoint.advertise_address}",
        f"--secure-port={endpoint.bind_port}",
        "--allow-privileged=true",
        "--authorization-mode=Node,RBAC",
        "--enable-bootstrap-token-auth=true",
        f"--client-ca-file={pki / 'ca.crt'}",
        f"--tls-cert-file={pki / 'apiserver.crt'}",
        f"--tls-private-key-file={pki / 'apiserver.key'}",
        f"--kubelet-client-certificate={pki / 'apiserver-kubelet-client.crt'}",
        f"--kubelet-client-key={pki / 'apiserver-kubelet-client.key'}",
        "--service-account-issuer=https://kubernetes.default.svc.cluster.local",
        f"--service-account-key-file={pki / 'sa.pub'}",
        f"--service-account-signing-key-file={pki / 'sa.key'}",
        f"--service-cluster-ip-range={cfg.service_cluster_ip_range}",
        *_etcd_flags(cfg),
    ]


def get_controller_manager_command(cfg: ClusterConfiguration) -> List[str]:
    pki = Path(cfg.certificates_dir)
    kubeconfig = KUBERNETES_DIR / "controller-manager.conf"
    cmd = [
        "kube-controller-manager",
        "--bind-address=127.0.0.1",
        "--leader-elect=true",
        f"--kubeconfig={kubeconfig}",
        f"--authentication-kubeconfig={kubeconfig}",
        f"--authorization-kubeconfig={kubeconfig}",
        f"--client-ca-file={pki / 'ca.crt'}",
        f"--root-ca-file={pki / 'ca.crt'}",
        f"--cluster-signing-cert-file={pki / 'ca.crt'}",
        f"--cluster-signing-key-file={pki / 'ca.key'}",
        f"--service-account-private-key-file={pki / 'sa.key'}",
        f"--service-cluster-ip-range={cfg.service_cluster_ip_range}",
        "--use-service-account-credentials=true",
    ]
    if cfg.pod_subnet:
        cmd += ["--allocate-node-cidrs=true", f"--cluster-cidr={cfg.pod_subnet}"]
    return cmd


def get_scheduler_command(cfg: ClusterConfiguration) -> List[str]:
    kubeconfig = KUBERNETES_DIR / "scheduler.conf"
    return [
        "kube-scheduler",
        "--bind-address=127.0.0.1",
        "--leader-elect=true",
        f"--kubeconfig={kubeconfig}",
        f"--authentication-kubeconfig={kubeconfig}",
        f"--authorization-kubeconfig={kubeconfig}",
    ]


def _kubernetes_unit(description: str, cmd: List[str]) -> UnitSpec:
    return UnitSpec(
        description=description,
        documentation=KUBERNETES_DOCS,
        service=UnitService(
            exec_start_cmd=cmd,
            restart=UnitRestartMode.ALWAYS,
            restart_sec=DEFAULT_UNIT_RESTART_SEC,
        ),
        install=UnitInstall(wanted_by=MULTI_USER_TARGET),
    )


def get_service_unit_specs(cfg: ClusterConfiguration, endpoint: APIEndpoint) -> Dict[Component, UnitSpec]:
    return {
        Component.KUBE_APISERVER: _kubernetes_unit(
            "Kubernetes API Server", get_apiserver_command(cfg, endpoint)
        ),
        Component.KUBE_CONTROLLER_MANAGER: _kubernetes_unit(
            "Kubernetes Controller Manager", get_controller_manager_command(cfg)
        ),
        Component.KUBE_SCHEDULER: _kubernetes_unit(
            "Kubernetes Scheduler", get_scheduler_command(cfg)
        ),
    }


def create_service_unit_files(
    units_dir: str | Path,
    cfg: ClusterConfiguration,
    endpoint: APIEndpoint,
    *component_names: str | Component,
) -> List[Path]:
    """Write one unit file per requested control-plane component."""
    specs = get_service_unit_specs(cfg, endpoint)

    written = []
    for name in component_names:
        try:
            component = Component(name)
        except ValueError:
            component = None
        spec = specs.get(component)
        if spec is None:
            raise ConfigError(f"couldn't retrieve service unit for {str(name)!r}")

        try:
            path = write_unit_to_disk(component, units_dir, spec)
        except UnitWriteError as exc:
            raise UnitWriteError(f"failed to create service unit file for {component.value!r}: {exc}") from exc

        log.debug("[control-plane] wrote service unit for component %r to %s", component.value, path)
        written.append(path)

    return written


def run_services(*component_names: str | Component, init_system: Optional[InitSystem] = None) -> None:
    """Start control-plane components as host services, one at a time, stopping at the first failure."""
    init_system = init_system or get_init_system()
    for name in component_names:
        init_system.service_start(Component(name).value)
