# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/constants.py

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path


class Component(str, Enum):
    """Components whose host-level service units are managed on a node."""

    ETCD = "etcd"
    KUBE_APISERVER = "kube-apiserver"
    KUBE_CONTROLLER_MANAGER = "kube-controller-manager"
    KUBE_SCHEDULER = "kube-scheduler"

    def __str__(self) -> str:
        return self.value


CONTROL_PLANE_COMPONENTS = (
    Component.KUBE_APISERVER,
    Component.KUBE_CONTROLLER_MANAGER,
    Component.KUBE_SCHEDULER,
)

KUBERNETES_DIR = Path("/etc/kubernetes")
DEFAULT_UNITS_DIR = Path("/etc/systemd/system")
DEFAULT_CERTIFICATES_DIR = KUBERNETES_DIR / "pki"
DEFAULT_ETCD_DATA_DIR = "/var/lib/etcd"

SERVICE_HOSTED_CONFIG_FILENAME = "service-hosted.yaml"
SERVICE_HOSTED_CONFIG_ENV = "CPJOIN_SERVICE_HOSTED_CONFIG"

ETCD_LISTEN_CLIENT_PORT = 2379
ETCD_LISTEN_PEER_PORT = 2380
ETCD_ADVERTISE_CLIENT_URLS_ANNOTATION = "kubeadm.kubernetes.io/etcd.advertise-client-urls"

# Certificates used to talk to etcd, relative to the certificates dir.
ETCD_CA_CERT_NAME = "etcd/ca.crt"
ETCD_CLIENT_CERT_NAME = "apiserver-etcd-client.crt"
ETCD_CLIENT_KEY_NAME = "apiserver-etcd-client.key"

# Wait policy after a new member has been added. The effective upper bound of
# the wait is retries * interval.
ETCD_HEALTHY_CHECK_RETRIES = 8
ETCD_HEALTHY_CHECK_INTERVAL = 5  # seconds

ETCD_REQUEST_TIMEOUT = 10  # seconds


def get_system_unit_filepath(component: str | Component, units_dir: str | Path) -> Path:
    """Path of the unit file for a component: <units_dir>/<component>.service"""
    name = component.value if isinstance(component, Component) else str(component)
    return Path(units_dir) / f"{name}.service"


def get_service_hosted_config_filepath() -> Path:
    env = os.environ.get(SERVICE_HOSTED_CONFIG_ENV)
    if env:
        return Path(env)
    return KUBERNETES_DIR / SERVICE_HOSTED_CONFIG_FILENAME
