# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/cpjoin/logging/log.py

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR_ENV = "CPJOIN_LOG_DIR"

_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _default_log_dir() -> Path:
    env = os.environ.get(LOG_DIR_ENV)
    return Path(env) if env else Path.home() / ".cpjoin" / "logs"


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(_FORMAT)
    logger.addHandler(handler)


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "cpjoin",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per join attempt, named after the run_id that the
    observers stamp on every event. The file always gets the DEBUG trace;
    the console gets INFO unless verbose is set.

    Returns (logger, run_id, log_path).
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir else _default_log_dir()
    base_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    _attach(logger, logging.FileHandler(log_path), logging.DEBUG)
    _attach(logger, logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO)

    logger.debug("run_id=%s log_file=%s", run_id, log_path)
    return logger, run_id, log_path
