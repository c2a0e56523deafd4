# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from cpjoin.constants import (
    DEFAULT_CERTIFICATES_DIR,
    DEFAULT_ETCD_DATA_DIR,
    DEFAULT_UNITS_DIR,
)


class APIEndpoint(BaseModel):
    """Address the node advertises for its control-plane services."""
    advertise_address: str
    bind_port: int = 6443


class LocalEtcd(BaseModel):
    data_dir: str = DEFAULT_ETCD_DATA_DIR
    binary: str = "etcd"
    extra_args: Dict[str, str] = Field(default_factory=dict)


class ExternalEtcd(BaseModel):
    endpoints: List[str]
    ca_file: str
    cert_file: str
    key_file: str


class EtcdConfig(BaseModel):
    local: Optional[LocalEtcd] = None
    external: Optional[ExternalEtcd] = None

    @model_validator(mode="after")
    def _one_of(self) -> "EtcdConfig":
        if self.local is not None and self.external is not None:
            raise ValueError("etcd: local and external are mutually exclusive")
        if self.local is None and self.external is None:
            self.local = LocalEtcd()
        return self


class ClusterConfiguration(BaseModel):
    kubernetes_version: str = "v1.30.0"
    certificates_dir: Path = DEFAULT_CERTIFICATES_DIR
    etcd: EtcdConfig = Field(default_factory=EtcdConfig)
    service_cluster_ip_range: str = "10.96.0.0/12"
    pod_subnet: Optional[str] = None

    @property
    def is_external_etcd(self) -> bool:
        return self.etcd.external is not None


class JoinConfiguration(BaseModel):
    node_name: str
    control_plane: Optional[APIEndpoint] = None     # None -> worker node
    discovery_endpoint: Optional[str] = None        # host:port of the API server being joined
    units_dir: Path = DEFAULT_UNITS_DIR
    dry_run: bool = False
    service_hosting: bool = False
    cluster: ClusterConfiguration = Field(default_factory=ClusterConfiguration)
