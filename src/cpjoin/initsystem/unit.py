# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/initsystem/unit.py

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Tuple

from cpjoin.constants import Component, get_system_unit_filepath
from cpjoin.errors import ConfigError, UnitWriteError

log = logging.getLogger("cpjoin")


class UnitRestartMode(str, Enum):
    NO = "no"
    ON_FAILURE = "on-failure"
    ON_SUCCESS = "on-success"
    ON_ABORT = "on-abort"
    ALWAYS = "always"


MULTI_USER_TARGET = "multi-user.target"
DEFAULT_UNIT_RESTART_SEC = 5


@dataclass(frozen=True)
class UnitService:
    exec_start_cmd: Tuple[str, ...]
    restart: UnitRestartMode = UnitRestartMode.ALWAYS
    restart_sec: int = DEFAULT_UNIT_RESTART_SEC

    def __post_init__(self):
        # accept any sequence, store an immutable copy
        object.__setattr__(self, "exec_start_cmd", tuple(self.exec_start_cmd))
        object.__setattr__(self, "restart", UnitRestartMode(self.restart))
        if not self.exec_start_cmd:
            raise ConfigError("unit ExecStart command must not be empty")
        if self.restart_sec < 0:
            raise ConfigError(f"unit RestartSec must be >= 0, got {self.restart_sec}")


@dataclass(frozen=True)
class UnitInstall:
    alias: str = ""
    wanted_by: str = ""
    required_by: str = ""


@dataclass(frozen=True)
class UnitSpec:
    """
    Declarative description of a host-level service unit.

    Built fresh for every component on every run and never mutated; the file it
    renders to is replaced wholesale on each write.
    """
    description: str
    documentation: str
    service: UnitService
    install: UnitInstall = field(default_factory=UnitInstall)


def render_unit(unit: UnitSpec) -> str:
    """
    Render a unit to its on-disk text.

    Every ExecStart token is followed by a single space, including the last
    one. Install lines are only emitted when set.
    """
    exec_start = "".join(f"{token} " for token in unit.service.exec_start_cmd)

    lines = [
        "",
        "[Unit]",
        f"Description={unit.description}",
        f"Documentation={unit.documentation}",
        "",
        "[Service]",
        f"ExecStart={exec_start}",
        f"Restart={unit.service.restart.value}",
        f"RestartSec={unit.service.restart_sec}",
        "",
        "[Install]",
    ]
    if unit.install.alias:
        lines.append(f"Alias={unit.install.alias}")
    if unit.install.wanted_by:
        lines.append(f"WantedBy={unit.install.wanted_by}")
    if unit.install.required_by:
        lines.append(f"RequiredBy={unit.install.required_by}")

    return "\n".join(lines) + "\n"


def write_unit_to_disk(component: str | Component, units_dir: str | Path, unit: UnitSpec) -> Path:
    """
    Render `unit` and write it to the component's unit file under `units_dir`.

    The directory is created owner-only (0700) and the file is written
    owner-only (0600). Content goes to a temp file in the same directory first
    and is renamed over the target, so readers never see a partial file.
    Returns the path written.
    """
    units_dir = Path(units_dir)
    try:
        units_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise UnitWriteError(f"failed to create directory {str(units_dir)!r}") from exc

    try:
        content = render_unit(unit)
    except (AttributeError, TypeError, ValueError) as exc:
        raise UnitWriteError(f"failed to marshal unit for {str(component)!r}") from exc

    filename = get_system_unit_filepath(component, units_dir)

    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=units_dir, prefix=f".{filename.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, filename)
        tmp_path = None
    except OSError as exc:
        raise UnitWriteError(
            f"failed to write unit file for {str(component)!r} ({str(filename)!r})"
        ) from exc
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)

    log.debug("wrote unit for %s to %s", component, filename)
    return filename
