import textwrap
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from cpjoin.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    # keep run logs out of the real home directory
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def join_yaml(tmp_path: Path) -> Path:
    f = tmp_path / "join.yaml"
    f.write_text(textwrap.dedent(f"""
        node_name: cp-2
        control_plane:
          advertise_address: 10.0.0.12
        discovery_endpoint: 10.0.0.11:6443
        cluster:
          certificates_dir: {tmp_path / "pki"}
    """))
    return f


def test_write_units_all_components(tmp_path, join_yaml):
    units = tmp_path / "units"
    result = runner.invoke(app, ["write-units", "--config", str(join_yaml), "--units-dir", str(units)])

    assert result.exit_code == 0, result.output
    assert sorted(p.name for p in units.iterdir()) == [
        "kube-apiserver.service",
        "kube-controller-manager.service",
        "kube-scheduler.service",
    ]


def test_write_units_unknown_component(tmp_path, join_yaml):
    result = runner.invoke(
        app, ["write-units", "kube-proxy", "--config", str(join_yaml), "--units-dir", str(tmp_path / "u")]
    )
    assert result.exit_code == 2
    assert not (tmp_path / "u").exists()


def test_join_etcd_without_certificates_fails(tmp_path, join_yaml):
    result = runner.invoke(
        app, ["join-etcd", "--config", str(join_yaml), "--dry-run", "--units-dir", str(tmp_path / "u")]
    )
    assert result.exit_code == 1
    assert not (tmp_path / "u").exists()


def test_mark_service_hosted(tmp_path):
    marker = tmp_path / "k8s" / "service-hosted.yaml"
    result = runner.invoke(app, ["mark-service-hosted", "--endpoint", "10.0.0.11:6443", "--path", str(marker)])

    assert result.exit_code == 0, result.output
    assert yaml.safe_load(marker.read_text()) == {"KubeAPIServerAdvertiseAddressEndpoint": "10.0.0.11:6443"}


def test_join_etcd_dry_run_leaves_configured_units_dir_alone(tmp_path, monkeypatch):
    import cpjoin.cli.app as cli_app

    pki = tmp_path / "pki"
    (pki / "etcd").mkdir(parents=True)
    for name in ("etcd/ca.crt", "apiserver-etcd-client.crt", "apiserver-etcd-client.key"):
        (pki / name).write_text("---")

    configured = tmp_path / "systemd"
    scratch = tmp_path / "scratch"

    def fake_mkdtemp(prefix=""):
        scratch.mkdir()
        return str(scratch)

    monkeypatch.setattr(cli_app.tempfile, "mkdtemp", fake_mkdtemp)

    f = tmp_path / "join.yaml"
    f.write_text(textwrap.dedent(f"""
        node_name: cp-2
        control_plane:
          advertise_address: 10.0.0.12
        units_dir: {configured}
        cluster:
          certificates_dir: {pki}
    """))

    result = runner.invoke(app, ["join-etcd", "--config", str(f), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert f"[dryrun] Writing units to {scratch}" in result.output
    assert "join finished: Done" in result.output
    assert not configured.exists()
    assert (scratch / "etcd.service").is_file()
