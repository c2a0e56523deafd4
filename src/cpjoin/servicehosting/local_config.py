# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/servicehosting/local_config.py

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cpjoin.constants import get_service_hosted_config_filepath
from cpjoin.errors import ConfigError, MarkerWriteError

log = logging.getLogger("cpjoin")


class LocalConfig(BaseModel):
    """Marker recording that the control plane of this node runs as host services."""

    model_config = ConfigDict(populate_by_name=True)

    kube_apiserver_advertise_address_endpoint: str = Field(
        default="", alias="KubeAPIServerAdvertiseAddressEndpoint"
    )


_UNSET = object()


class ServiceHostingStore:
    """
    Load-once view of the service-hosting marker file.

    The first load (present or absent) is cached for the lifetime of the store
    and never invalidated: a store that looked before the marker was written
    keeps reporting the node as not service-hosted. Concurrent first loads are
    serialized; later reads do not take the lock.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else get_service_hosted_config_filepath()
        self._lock = threading.Lock()
        self._cached = _UNSET

    def load(self) -> Optional[LocalConfig]:
        cached = self._cached
        if cached is not _UNSET:
            return cached
        with self._lock:
            if self._cached is _UNSET:
                self._cached = self._read()
            return self._cached

    def is_service_hosted(self) -> bool:
        return self.load() is not None

    def _read(self) -> Optional[LocalConfig]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("no service-hosting marker at %s", self.path)
            return None
        except OSError as exc:
            raise ConfigError(f"failed to read service-hosting marker {str(self.path)!r}: {exc}") from exc

        try:
            data = yaml.safe_load(content) or {}
            return LocalConfig.model_validate(data)
        except (yaml.YAMLError, ValidationError) as exc:
            raise ConfigError(f"invalid service-hosting marker {str(self.path)!r}: {exc}") from exc


_default_store: Optional[ServiceHostingStore] = None
_default_store_lock = threading.Lock()


def default_store() -> ServiceHostingStore:
    """Process-wide store for callers that do not pass one explicitly."""
    global _default_store
    if _default_store is None:
        with _default_store_lock:
            if _default_store is None:
                _default_store = ServiceHostingStore()
    return _default_store


def is_service_hosted_control_plane(path: str | Path | None = None) -> bool:
    """True if the marker file exists right now (uncached)."""
    target = Path(path) if path else get_service_hosted_config_filepath()
    return target.exists()


def load_service_hosted_config(store: Optional[ServiceHostingStore] = None) -> Optional[LocalConfig]:
    return (store or default_store()).load()


def mark_control_plane_as_service_hosted(cfg: LocalConfig, path: str | Path | None = None) -> Path:
    """Write the marker file (dir 0700, file 0600), replacing any previous one."""
    target = Path(path) if path else get_service_hosted_config_filepath()
    content = yaml.safe_dump(cfg.model_dump(by_alias=True), default_flow_style=False)

    tmp_path = None
    try:
        target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, target)
        tmp_path = None
    except OSError as exc:
        raise MarkerWriteError(f"failed to mark the node as service-hosted ({str(target)!r}): {exc}") from exc
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)

    log.info("[service-hosting] marked node as service-hosted (%s)", target)
    return target
