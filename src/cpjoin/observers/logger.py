# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
import logging
from .events import BaseEvent, HealthChecked, JoinFailed

_CONTEXT_FIELDS = ("ts", "run_id", "node", "phase")


def _level(event: BaseEvent) -> int:
    if isinstance(event, JoinFailed):
        return logging.WARNING
    if isinstance(event, HealthChecked) and not event.ok:
        return logging.WARNING
    return logging.DEBUG


class LoggerObserver:
    """Mirrors join events into the run log, keyed by run_id."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _CONTEXT_FIELDS)
        self.logger.log(
            _level(event),
            "[EVENT] %s run=%s node=%s phase=%s: %s",
            event.__class__.__name__, event.run_id, event.node, event.phase, fields,
        )
