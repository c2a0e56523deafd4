# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/initsystem/controller.py

from __future__ import annotations

import logging
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import List, Protocol

from cpjoin.errors import ServiceStartError, UnsupportedPlatformError

log = logging.getLogger("cpjoin")


class ServiceState(str, Enum):
    ACTIVE = "active"
    ACTIVATING = "activating"
    INACTIVE = "inactive"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str) -> "ServiceState":
        value = (value or "").strip().lower()
        for state in cls:
            if state.value == value:
                return state
        return cls.UNKNOWN


class InitSystem(Protocol):
    """A host service manager able to start and query units by component name."""

    name: str

    def service_start(self, service: str) -> None: ...

    def service_stop(self, service: str) -> None: ...

    def service_enable(self, service: str) -> None: ...

    def service_status(self, service: str) -> ServiceState: ...

    def is_active(self, service: str) -> bool: ...


def _run(cmd: List[str], timeout: float) -> subprocess.CompletedProcess:
    log.debug("$ %s", " ".join(cmd))
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class SystemdInitSystem:
    """systemd, driven through systemctl."""

    name = "systemd"

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    @staticmethod
    def detect() -> bool:
        return shutil.which("systemctl") is not None and Path("/run/systemd/system").is_dir()

    def _systemctl(self, service: str, *args: str) -> None:
        cmd = ["systemctl", *args]
        try:
            result = _run(cmd, self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ServiceStartError(f"{' '.join(cmd)} failed for {service!r}: {exc}") from exc
        if result.returncode != 0:
            raise ServiceStartError(
                f"{' '.join(cmd)} failed for {service!r} (rc={result.returncode}): {result.stderr.strip()}"
            )

    def service_start(self, service: str) -> None:
        # pick up freshly written unit files before enabling them
        self._systemctl(service, "daemon-reload")
        self.service_enable(service)
        self._systemctl(service, "start", f"{service}.service")

    def service_stop(self, service: str) -> None:
        self._systemctl(service, "stop", f"{service}.service")

    def service_enable(self, service: str) -> None:
        self._systemctl(service, "enable", f"{service}.service")

    def service_status(self, service: str) -> ServiceState:
        cmd = ["systemctl", "show", f"{service}.service", "--property=ActiveState", "--value"]
        try:
            result = _run(cmd, self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            log.warning("Failed to get status for %s: %s", service, exc)
            return ServiceState.UNKNOWN
        if result.returncode != 0:
            log.warning("Failed to get status for %s: %s", service, result.stderr.strip())
            return ServiceState.UNKNOWN
        return ServiceState.from_string(result.stdout)

    def is_active(self, service: str) -> bool:
        return self.service_status(service) is ServiceState.ACTIVE


class OpenRCInitSystem:
    """
    OpenRC, driven through rc-service and rc-update.

    OpenRC does not read the systemd unit files written by cpjoin: each
    component needs an init script of its own under `init_dir` (provided by
    the distribution package or the operator) before it can be started.
    """

    name = "openrc"

    def __init__(self, timeout: float = 60.0, init_dir: str | Path = "/etc/init.d"):
        self.timeout = timeout
        self.init_dir = Path(init_dir)

    @staticmethod
    def detect() -> bool:
        return shutil.which("rc-service") is not None and shutil.which("openrc") is not None

    def _exec(self, service: str, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            result = _run(cmd, self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ServiceStartError(f"{' '.join(cmd)} failed for {service!r}: {exc}") from exc
        if result.returncode != 0:
            raise ServiceStartError(
                f"{' '.join(cmd)} failed for {service!r} (rc={result.returncode}): {result.stderr.strip()}"
            )
        return result

    def service_start(self, service: str) -> None:
        script = self.init_dir / service
        if not script.is_file():
            raise ServiceStartError(
                f"no OpenRC init script for {service!r} at {str(script)!r}; "
                "only systemd units are generated, install an init script for this component"
            )
        self.service_enable(service)
        self._exec(service, ["rc-service", service, "start"])

    def service_stop(self, service: str) -> None:
        self._exec(service, ["rc-service", service, "stop"])

    def service_enable(self, service: str) -> None:
        self._exec(service, ["rc-update", "add", service, "default"])

    def service_status(self, service: str) -> ServiceState:
        try:
            result = _run(["rc-service", service, "status"], self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            log.warning("Failed to get status for %s: %s", service, exc)
            return ServiceState.UNKNOWN
        out = result.stdout.lower()
        if "started" in out:
            return ServiceState.ACTIVE
        if "starting" in out:
            return ServiceState.ACTIVATING
        if "crashed" in out:
            return ServiceState.FAILED
        if "stopped" in out:
            return ServiceState.INACTIVE
        return ServiceState.UNKNOWN

    def is_active(self, service: str) -> bool:
        return self.service_status(service) is ServiceState.ACTIVE


SUPPORTED_INIT_SYSTEMS = (SystemdInitSystem, OpenRCInitSystem)


def get_init_system() -> InitSystem:
    """
    Probe the host for a supported service manager.

    Raises UnsupportedPlatformError when none of the known managers is present.
    """
    for cls in SUPPORTED_INIT_SYSTEMS:
        if cls.detect():
            log.debug("detected init system: %s", cls.name)
            return cls()
    supported = ", ".join(cls.name for cls in SUPPORTED_INIT_SYSTEMS)
    raise UnsupportedPlatformError(f"no supported init system found (supported: {supported})")
