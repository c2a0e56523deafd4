# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/observers/console.py
from __future__ import annotations
from typing import Callable, Dict
from .events import (
    BaseEvent,
    DryRunAction,
    HealthChecked,
    JoinFailed,
    JoinSkipped,
    JoinSucceeded,
    MemberAnnounced,
    ServiceStarted,
    UnitWritten,
    WaitStarted,
)


def _wait_line(e: WaitStarted) -> str:
    return (
        f"[{e.phase}] Waiting for the new etcd member to join the cluster. "
        f"This can take up to {e.retries * e.interval_s:g}s"
    )


def _health_line(e: HealthChecked) -> str:
    if e.ok:
        return f"[{e.phase}] etcd cluster is healthy ({', '.join(e.endpoints)})"
    return f"[{e.phase}] etcd cluster is NOT healthy: {e.error}"


_FORMATS: Dict[type, Callable] = {
    DryRunAction: lambda e: f"[dryrun] {e.message}",
    JoinSkipped: lambda e: f"[{e.phase}] {e.reason}",
    MemberAnnounced: lambda e: f"[{e.phase}] Announced new etcd member joining to the existing etcd cluster",
    UnitWritten: lambda e: f"[{e.phase}] Wrote service unit for {e.component!r} to {e.path!r}",
    ServiceStarted: lambda e: f"[{e.phase}] Started {e.component!r} via {e.init_system}",
    WaitStarted: _wait_line,
    JoinSucceeded: lambda e: f"[{e.phase}] Join finished ({e.state})",
    JoinFailed: lambda e: f"[{e.phase}] Join failed in state {e.state}: {e.error}",
    HealthChecked: _health_line,
}


class ConsoleObserver:
    """Human readable progress lines for operators."""

    def notify(self, event: BaseEvent) -> None:
        fmt = _FORMATS.get(type(event))
        if fmt is None:
            d = event.dict()
            print(f"[{d['phase']}] {event.__class__.__name__} "
                  + ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "node", "phase")))
            return
        print(fmt(event), flush=True)
