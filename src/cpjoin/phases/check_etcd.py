# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/phases/check_etcd.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

from cpjoin.config.models import ClusterConfiguration
from cpjoin.errors import ConfigError, CpjoinError
from cpjoin.etcd.client import EtcdClient, get_client_url_from_join_endpoint
from cpjoin.etcd.health import (
    ClientFactory,
    HealthStrategy,
    ViaDiscovery,
    ViaEndpoint,
    check_cluster_status,
)
from cpjoin.observers.console import ConsoleObserver
from cpjoin.observers.dispatcher import EventBus
from cpjoin.observers.events import HealthChecked, JoinSkipped, new_ctx

log = logging.getLogger("cpjoin")


@dataclass
class JoinData:
    """What the check-etcd phase needs to know about the join in progress."""
    node_name: str
    control_plane: bool
    cluster: ClusterConfiguration
    certificates_dir: Path
    service_hosting: bool = False
    discovery_endpoint: Optional[str] = None
    core_api_factory: Optional[Callable[[], Any]] = None


def select_strategy(data: JoinData) -> HealthStrategy:
    if data.service_hosting:
        # no API server to read the etcd pods from; use the node being joined
        if not data.discovery_endpoint:
            raise ConfigError("service-hosted control plane needs a discovery endpoint to check etcd")
        return ViaEndpoint(get_client_url_from_join_endpoint(data.discovery_endpoint))
    if data.core_api_factory is None:
        raise ConfigError("checking etcd by discovery needs an API client")
    return ViaDiscovery(data.core_api_factory())


def run_check_etcd_phase(
    data: JoinData,
    bus: Optional[EventBus] = None,
    client_factory: ClientFactory = EtcdClient.from_endpoint,
) -> List[str]:
    """
    Ensure the etcd cluster is healthy before the node goes any further.
    Returns the checked endpoints (empty when the check was skipped).
    """
    bus = bus or EventBus(observers=[ConsoleObserver()])
    ctx = new_ctx(node=data.node_name, phase="check-etcd")

    if not data.control_plane:
        log.debug("[check-etcd] not a control-plane node, skipping")
        return []

    if data.cluster.is_external_etcd:
        bus.emit(JoinSkipped(**ctx, reason="Skipping etcd check in external mode"))
        return []

    log.info("[check-etcd] Checking that the etcd cluster is healthy")
    strategy = select_strategy(data)
    strategy_name = type(strategy).__name__
    try:
        endpoints = check_cluster_status(strategy, data.certificates_dir, client_factory)
    except CpjoinError as exc:
        bus.emit(HealthChecked(**ctx, strategy=strategy_name, endpoints=[], ok=False, error=str(exc)))
        raise

    bus.emit(HealthChecked(**ctx, strategy=strategy_name, endpoints=endpoints, ok=True))
    return endpoints
