# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one join attempt
    node: str         # node being joined
    phase: str        # etcd / control-plane / check-etcd

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(node: str, phase: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "node": node,
        "phase": phase,
    }


# ---------------------------------------------------------------------
# Join lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DryRunAction(BaseEvent):
    message: str

@dataclass(frozen=True)
class JoinSkipped(BaseEvent):
    reason: str

@dataclass(frozen=True)
class MemberAnnounced(BaseEvent):
    peer_url: str
    members: List[str]

@dataclass(frozen=True)
class UnitWritten(BaseEvent):
    component: str
    path: str

@dataclass(frozen=True)
class ServiceStarted(BaseEvent):
    component: str
    init_system: str

@dataclass(frozen=True)
class WaitStarted(BaseEvent):
    retries: int
    interval_s: float

@dataclass(frozen=True)
class JoinSucceeded(BaseEvent):
    state: str

@dataclass(frozen=True)
class JoinFailed(BaseEvent):
    state: str
    error: str


# ---------------------------------------------------------------------
# Post-join verification
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class HealthChecked(BaseEvent):
    strategy: str
    endpoints: List[str]
    ok: bool
    error: Optional[str] = None
