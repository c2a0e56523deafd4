# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/etcd/health.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from cpjoin.constants import ETCD_ADVERTISE_CLIENT_URLS_ANNOTATION, ETCD_LISTEN_CLIENT_PORT
from cpjoin.errors import ClusterUnhealthyError, ConnectionSetupError, DiscoveryError
from cpjoin.etcd.client import EtcdClient

log = logging.getLogger("cpjoin")

ETCD_POD_NAMESPACE = "kube-system"
ETCD_POD_SELECTOR = "component=etcd,tier=control-plane"

ClientFactory = Callable[[str, Path], EtcdClient]


@dataclass(frozen=True)
class ViaEndpoint:
    """Probe one known etcd client URL (service-hosted control plane)."""
    url: str


@dataclass(frozen=True)
class ViaDiscovery:
    """Discover the etcd replicas through the API server, then probe each one."""
    core_api: Any  # kubernetes.client.CoreV1Api


HealthStrategy = Union[ViaEndpoint, ViaDiscovery]


def new_core_api(kubeconfig: Optional[str | Path] = None, context: Optional[str] = None) -> client.CoreV1Api:
    try:
        config.load_kube_config(config_file=str(kubeconfig) if kubeconfig else None, context=context)
    except (ConfigException, OSError) as exc:
        raise DiscoveryError(f"failed to load kubeconfig {kubeconfig or '(default)'}: {exc}") from exc
    return client.CoreV1Api()


def _probe(url: str, certificates_dir: Path, client_factory: ClientFactory) -> None:
    try:
        etcd = client_factory(url, certificates_dir)
    except ConnectionSetupError as exc:
        raise ClusterUnhealthyError(f"cannot reach etcd member {url}: {exc}") from exc
    etcd.check_cluster_health()


def check_via_endpoint(
    endpoint: str,
    certificates_dir: str | Path,
    client_factory: ClientFactory = EtcdClient.from_endpoint,
) -> List[str]:
    """
    Single health probe against a known client URL. Used when the control
    plane runs as host services and there is no API server to ask yet.
    """
    log.info("[check-etcd] Checking etcd cluster health at %s", endpoint)
    _probe(endpoint, Path(certificates_dir), client_factory)
    return [endpoint]


def discover_etcd_endpoints(core_api: Any) -> List[str]:
    """Client URLs of the etcd replicas registered in the cluster."""
    try:
        pods = core_api.list_namespaced_pod(
            namespace=ETCD_POD_NAMESPACE,
            label_selector=ETCD_POD_SELECTOR,
        )
    except (ApiException, Urllib3HTTPError, OSError) as exc:
        raise DiscoveryError(
            f"failed to list etcd pods in {ETCD_POD_NAMESPACE} ({ETCD_POD_SELECTOR}): {exc}"
        ) from exc

    endpoints = []
    for pod in pods.items or []:
        annotations = pod.metadata.annotations or {}
        url = annotations.get(ETCD_ADVERTISE_CLIENT_URLS_ANNOTATION)
        if not url and pod.status and pod.status.pod_ip:
            url = f"https://{pod.status.pod_ip}:{ETCD_LISTEN_CLIENT_PORT}"
        if not url:
            raise DiscoveryError(f"etcd pod {pod.metadata.name} has no client URL")
        endpoints.append(url)

    if not endpoints:
        raise DiscoveryError(f"no etcd pods found in {ETCD_POD_NAMESPACE} ({ETCD_POD_SELECTOR})")
    return endpoints


def check_via_discovery(
    core_api: Any,
    certificates_dir: str | Path,
    client_factory: ClientFactory = EtcdClient.from_endpoint,
) -> List[str]:
    """Discover every etcd replica, then probe each of them once."""
    endpoints = discover_etcd_endpoints(core_api)
    log.info("[check-etcd] Discovered etcd members: %s", ", ".join(endpoints))
    for url in endpoints:
        _probe(url, Path(certificates_dir), client_factory)
    return endpoints


def check_cluster_status(
    strategy: HealthStrategy,
    certificates_dir: str | Path,
    client_factory: ClientFactory = EtcdClient.from_endpoint,
) -> List[str]:
    """
    One-shot post-join verification. No retries: callers that want
    resilience wrap this call. Returns the endpoints that were checked.
    """
    if isinstance(strategy, ViaEndpoint):
        return check_via_endpoint(strategy.url, certificates_dir, client_factory)
    if isinstance(strategy, ViaDiscovery):
        return check_via_discovery(strategy.core_api, certificates_dir, client_factory)
    raise TypeError(f"unknown health check strategy: {strategy!r}")
