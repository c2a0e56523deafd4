# tests/servicehosting/test_local_config.py
from __future__ import annotations

import os
import stat
import threading
from pathlib import Path

import pytest
import yaml

import cpjoin.servicehosting.local_config as local_config
from cpjoin.errors import ConfigError
from cpjoin.servicehosting.local_config import (
    LocalConfig,
    ServiceHostingStore,
    is_service_hosted_control_plane,
    load_service_hosted_config,
    mark_control_plane_as_service_hosted,
)


def test_mark_writes_yaml_with_owner_only_permissions(tmp_path: Path):
    path = tmp_path / "kubernetes" / "service-hosted.yaml"

    mark_control_plane_as_service_hosted(LocalConfig(kube_apiserver_advertise_address_endpoint="10.0.0.11:6443"), path)

    assert yaml.safe_load(path.read_text()) == {"KubeAPIServerAdvertiseAddressEndpoint": "10.0.0.11:6443"}
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert stat.S_IMODE(os.stat(path.parent).st_mode) == 0o700
    assert is_service_hosted_control_plane(path) is True


def test_is_service_hosted_without_marker(tmp_path: Path):
    assert is_service_hosted_control_plane(tmp_path / "missing.yaml") is False


def test_marker_path_from_environment(tmp_path: Path, monkeypatch):
    path = tmp_path / "marker.yaml"
    monkeypatch.setenv("CPJOIN_SERVICE_HOSTED_CONFIG", str(path))

    mark_control_plane_as_service_hosted(LocalConfig(kube_apiserver_advertise_address_endpoint="cp:6443"))

    assert path.is_file()
    assert is_service_hosted_control_plane() is True


def test_load_is_cached_even_after_file_is_deleted(tmp_path: Path):
    path = tmp_path / "service-hosted.yaml"
    path.write_text("KubeAPIServerAdvertiseAddressEndpoint: 10.0.0.11:6443\n")
    store = ServiceHostingStore(path)

    first = store.load()
    path.unlink()
    second = store.load()

    assert second is first
    assert second.kube_apiserver_advertise_address_endpoint == "10.0.0.11:6443"
    assert store.is_service_hosted() is True


def test_absence_is_cached_too(tmp_path: Path):
    path = tmp_path / "service-hosted.yaml"
    store = ServiceHostingStore(path)

    assert store.load() is None
    mark_control_plane_as_service_hosted(LocalConfig(kube_apiserver_advertise_address_endpoint="cp:6443"), path)

    # a store that already looked keeps its first answer
    assert store.is_service_hosted() is False
    assert ServiceHostingStore(path).is_service_hosted() is True


def test_invalid_marker_is_a_config_error_and_not_cached(tmp_path: Path):
    path = tmp_path / "service-hosted.yaml"
    path.write_text("KubeAPIServerAdvertiseAddressEndpoint: [unclosed\n")
    store = ServiceHostingStore(path)

    with pytest.raises(ConfigError):
        store.load()

    path.write_text("KubeAPIServerAdvertiseAddressEndpoint: 10.0.0.11:6443\n")
    assert store.load().kube_apiserver_advertise_address_endpoint == "10.0.0.11:6443"


def test_concurrent_first_loads_read_once(tmp_path: Path, monkeypatch):
    path = tmp_path / "service-hosted.yaml"
    path.write_text("KubeAPIServerAdvertiseAddressEndpoint: 10.0.0.11:6443\n")
    store = ServiceHostingStore(path)

    reads = []
    real_read = store._read

    def counting_read():
        reads.append(1)
        return real_read()

    monkeypatch.setattr(store, "_read", counting_read)

    results = []
    threads = [threading.Thread(target=lambda: results.append(store.load())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reads) == 1
    assert all(r is results[0] for r in results)


def test_module_level_load_uses_default_store(tmp_path: Path, monkeypatch):
    path = tmp_path / "service-hosted.yaml"
    path.write_text("KubeAPIServerAdvertiseAddressEndpoint: 10.0.0.11:6443\n")
    monkeypatch.setenv("CPJOIN_SERVICE_HOSTED_CONFIG", str(path))
    monkeypatch.setattr(local_config, "_default_store", None)

    first = load_service_hosted_config()
    path.unlink()

    assert load_service_hosted_config() is first


def test_load_with_explicit_store_and_no_marker(tmp_path: Path):
    store = ServiceHostingStore(tmp_path / "missing.yaml")

    assert load_service_hosted_config(store) is None
    assert store.is_service_hosted() is False
