# tests/etcd/test_join_orchestrator.py
from __future__ import annotations

from pathlib import Path

import pytest

from cpjoin.config.models import APIEndpoint, ClusterConfiguration, EtcdConfig, ExternalEtcd
from cpjoin.constants import Component, get_system_unit_filepath
from cpjoin.errors import ClusterUnavailableError, ConfigError, MembershipError, UnitWriteError
from cpjoin.etcd.client import Member
from cpjoin.etcd.local import (
    JoinOrchestrator,
    JoinState,
    create_service_unit_file,
    get_etcd_command,
    run_stacked_etcd_service,
)
from cpjoin.observers.dispatcher import EventBus
from cpjoin.observers.events import DryRunAction, JoinFailed, MemberAnnounced, UnitWritten
from cpjoin.utils.execution import ExecutionContext


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


class FakeEtcdClient:
    def __init__(self, log, members=None, add_error=None, wait_error=None):
        self.log = log
        self.members = members or []
        self.add_error = add_error
        self.wait_error = wait_error

    def add_member(self, name, peer_url):
        self.log.append(("add_member", name, peer_url))
        if self.add_error:
            raise self.add_error
        return list(self.members)

    def wait_for_cluster_available(self, retries, interval):
        self.log.append(("wait", retries, interval))
        if self.wait_error:
            raise self.wait_error
        return True


class FakeInitSystem:
    name = "fake"

    def __init__(self, log, units_dir: Path):
        self.log = log
        self.units_dir = units_dir

    def service_start(self, service):
        # the unit must already be on disk when the service starts
        assert get_system_unit_filepath(service, self.units_dir).is_file()
        self.log.append(("service_start", service))


PEERS = [
    Member("cp-1", "https://10.0.0.11:2380"),
    Member("cp-2", "https://10.0.0.12:2380"),
]


def _orchestrator(tmp_path, log, *, dry_run=False, cfg=None, client=None, bus=None, **kw):
    units_dir = tmp_path / "units"
    client = client or FakeEtcdClient(log, members=PEERS)

    def client_factory(url, certs):
        log.append(("client", url, str(certs)))
        return client

    return JoinOrchestrator(
        cfg or ClusterConfiguration(certificates_dir=tmp_path / "pki"),
        APIEndpoint(advertise_address="10.0.0.12"),
        "cp-2",
        units_dir=units_dir,
        execution=ExecutionContext(dry_run=dry_run),
        bus=bus or EventBus([]),
        client_factory=client_factory,
        init_system_factory=lambda: FakeInitSystem(log, units_dir),
        retries=3,
        interval=0.5,
        **kw,
    )


def _mutating(log):
    return [e for e in log if e[0] in ("add_member", "service_start")]


def test_real_join_registers_writes_starts_and_waits(tmp_path):
    log = []
    cap = Capture()
    orch = _orchestrator(tmp_path, log, bus=EventBus([cap]))

    assert orch.join() is JoinState.VERIFIED

    assert [e[0] for e in log] == ["client", "add_member", "service_start", "wait"]
    assert log[0][1] == "https://10.0.0.12:2379"
    assert log[1] == ("add_member", "cp-2", "https://10.0.0.12:2380")
    assert log[3] == ("wait", 3, 0.5)

    text = get_system_unit_filepath(Component.ETCD, tmp_path / "units").read_text()
    assert "--initial-cluster=cp-1=https://10.0.0.11:2380,cp-2=https://10.0.0.12:2380 " in text
    assert "--initial-cluster-state=existing " in text
    assert any(isinstance(e, MemberAnnounced) for e in cap.events)


def test_unit_uses_snapshot_returned_by_add_member(tmp_path):
    log = []
    # server-defined order: new member first
    members = [Member("cp-2", "https://10.0.0.12:2380"), Member("cp-1", "https://10.0.0.11:2380")]
    orch = _orchestrator(tmp_path, log, client=FakeEtcdClient(log, members=members))

    orch.join()

    assert orch.members == members
    assert "--initial-cluster=cp-2=https://10.0.0.12:2380,cp-1=https://10.0.0.11:2380" in orch.unit.service.exec_start_cmd


def test_dry_run_makes_no_mutating_calls_but_renders_a_unit(tmp_path):
    log = []
    cap = Capture()
    orch = _orchestrator(tmp_path, log, dry_run=True, bus=EventBus([cap]))

    assert orch.join() is JoinState.DONE

    assert _mutating(log) == []
    assert not any(e[0] == "wait" for e in log)

    text = get_system_unit_filepath(Component.ETCD, tmp_path / "units").read_text()
    assert text.startswith("\n[Unit]\nDescription=etcd\n")
    assert "ExecStart=etcd --name=cp-2 " in text
    assert "--initial-cluster=cp-2=https://10.0.0.12:2380 " in text
    assert "initial-cluster-state" not in text
    assert text.endswith("[Install]\nWantedBy=multi-user.target\n")

    messages = [e.message for e in cap.events if isinstance(e, DryRunAction)]
    assert "Would add etcd member: https://10.0.0.12:2380" in messages


def test_failed_add_member_blocks_unit_and_start(tmp_path):
    log = []
    cap = Capture()
    client = FakeEtcdClient(log, add_error=MembershipError("quorum would be lost"))
    orch = _orchestrator(tmp_path, log, client=client, bus=EventBus([cap]))

    with pytest.raises(MembershipError):
        orch.join()

    assert not (tmp_path / "units").exists()
    assert not any(e[0] == "service_start" for e in log)
    assert orch.state is JoinState.START
    failed = [e for e in cap.events if isinstance(e, JoinFailed)]
    assert failed and failed[0].state == "Start"


def test_unit_write_failure_is_fatal_without_rollback(tmp_path, monkeypatch):
    import cpjoin.etcd.local as local

    log = []
    orch = _orchestrator(tmp_path, log)

    def boom(*a, **k):
        raise UnitWriteError("disk full")

    monkeypatch.setattr(local, "write_unit_to_disk", boom)

    with pytest.raises(UnitWriteError):
        orch.join()

    # the member stays registered, nothing was started
    assert [e[0] for e in log] == ["client", "add_member"]
    assert orch.state is JoinState.MEMBER_REGISTERED


def test_wait_exhaustion_leaves_service_running(tmp_path):
    log = []
    client = FakeEtcdClient(log, members=PEERS, wait_error=ClusterUnavailableError("not available"))
    orch = _orchestrator(tmp_path, log, client=client)

    with pytest.raises(ClusterUnavailableError):
        orch.join()

    assert ("service_start", "etcd") in log
    assert orch.state is JoinState.SERVICE_STARTED


def test_external_etcd_is_done_without_any_call(tmp_path):
    log = []
    cfg = ClusterConfiguration(
        etcd=EtcdConfig(external=ExternalEtcd(
            endpoints=["https://etcd-0:2379"], ca_file="ca", cert_file="c", key_file="k",
        ))
    )
    orch = _orchestrator(tmp_path, log, cfg=cfg)

    assert orch.join() is JoinState.DONE
    assert log == []
    assert not (tmp_path / "units").exists()


def test_create_service_unit_file_for_first_member(tmp_path):
    cfg = ClusterConfiguration(certificates_dir=tmp_path / "pki")
    path = create_service_unit_file(tmp_path / "units", "cp-1", cfg, APIEndpoint(advertise_address="10.0.0.11"))

    assert path.name == "etcd.service"
    assert "--initial-cluster=cp-1=https://10.0.0.11:2380 " in path.read_text()


def test_create_service_unit_file_rejects_external_etcd(tmp_path):
    cfg = ClusterConfiguration(
        etcd=EtcdConfig(external=ExternalEtcd(endpoints=["https://e:2379"], ca_file="a", cert_file="b", key_file="c"))
    )
    with pytest.raises(ConfigError):
        create_service_unit_file(tmp_path / "units", "cp-1", cfg, APIEndpoint(advertise_address="10.0.0.11"))


def test_etcd_command_includes_extra_args(tmp_path):
    cfg = ClusterConfiguration.model_validate({
        "certificates_dir": str(tmp_path),
        "etcd": {"local": {"data_dir": "/data/etcd", "extra_args": {"quota-backend-bytes": "8589934592"}}},
    })
    cmd = get_etcd_command(cfg, APIEndpoint(advertise_address="10.0.0.11"), "cp-1", [])

    assert cmd[0] == "etcd"
    assert "--data-dir=/data/etcd" in cmd
    assert "--quota-backend-bytes=8589934592" in cmd
    assert f"--trusted-ca-file={tmp_path / 'etcd' / 'ca.crt'}" in cmd


def test_unit_written_event_has_path(tmp_path):
    log = []
    cap = Capture()
    _orchestrator(tmp_path, log, dry_run=True, bus=EventBus([cap])).join()

    written = [e for e in cap.events if isinstance(e, UnitWritten)]
    assert written[0].component == "etcd"
    assert written[0].path.endswith("etcd.service")


def test_run_stacked_etcd_service_dry_run_with_real_client(tmp_path):
    pki = tmp_path / "pki"
    (pki / "etcd").mkdir(parents=True)
    for name in ("etcd/ca.crt", "apiserver-etcd-client.crt", "apiserver-etcd-client.key"):
        (pki / name).write_text("---")

    state = run_stacked_etcd_service(
        tmp_path / "units", "cp-2", ClusterConfiguration(), APIEndpoint(advertise_address="10.0.0.12"),
        is_dry_run=True, certificates_dir=pki, bus=EventBus([]),
    )

    assert state is JoinState.DONE
    assert get_system_unit_filepath(Component.ETCD, tmp_path / "units").is_file()
