# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/config/loader.py

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from cpjoin.errors import ConfigError
from .models import JoinConfiguration

log = logging.getLogger("cpjoin")


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def load_config(path: str | Path) -> JoinConfiguration:
    """
    Load and validate a join configuration file.

    ``${ENV_VAR}`` placeholders are resolved with ``os.path.expandvars`` before
    parsing, so secrets and per-host values can come from the environment.
    """
    path = Path(path)
    try:
        data = _load_yaml(path)
    except OSError as exc:
        raise ConfigError(f"failed to read config {str(path)!r}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config {str(path)!r}: {exc}") from exc

    log.debug("Loaded config from %s", path)
    try:
        return JoinConfiguration.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {str(path)!r}: {exc}") from exc
