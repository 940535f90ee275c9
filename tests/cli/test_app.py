import json
import logging
import os

import pytest
from typer.testing import CliRunner

from csi_recovery.cli import app as cli_app
from csi_recovery.csi.proto import NodeCapability
from csi_recovery.errors import ConfigError
from csi_recovery.k8s.metrics import NodeSummary
from csi_recovery.volume.resolver import PROVISIONER_ANNOTATION

from fakes import FakeCluster, FakeDriver, make_pod, make_pvc, make_replica_set, make_workload, owner, protocol_error

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    # init_logging binds a handler to the runner's (now closed) stdout
    logger = logging.getLogger("csi_recovery")
    logger.handlers.clear()
    logger.propagate = True


DRIVER = "csi.example.com"


@pytest.fixture
def cluster():
    c = FakeCluster()
    c.add_workload("Deployment", make_workload("app1", "ns", replicas=3))
    c.add_replica_set(make_replica_set("app1-rs", "ns", owners=[owner("Deployment", "app1")]))
    c.add_pod(make_pod("app1-rs-abc", "ns", owners=[owner("ReplicaSet", "app1-rs")]))
    c.add_pvc(make_pvc("data", "ns", annotations={PROVISIONER_ANNOTATION: DRIVER}))
    c.summary = NodeSummary.model_validate({
        "pods": [{
            "podRef": {"name": "app1-rs-abc", "namespace": "ns", "uid": "uid-1"},
            "volume": [{"name": "data", "pvcRef": {"name": "data", "namespace": "ns"}}],
        }]
    })
    return c


@pytest.fixture
def wired(monkeypatch, cluster):
    drivers = {}
    seen = {}

    def fake_cluster_client(kubeconfig_path, node_name):
        seen["cluster"] = (kubeconfig_path, node_name)
        return cluster

    def fake_open(endpoint, *, timeout):
        seen.setdefault("timeouts", []).append(timeout)
        return drivers[endpoint]

    monkeypatch.setattr(cli_app, "new_cluster_client", fake_cluster_client)
    monkeypatch.setattr(cli_app, "open_driver_client", fake_open)
    monkeypatch.setattr(cli_app, "install_shutdown_handlers", lambda cancel, logger: None)
    for key in [k for k in os.environ if k.startswith("CSI_RECOVERY_")]:
        monkeypatch.delenv(key)
    return drivers, seen


def _args(*extra):
    return ["run", "--endpoints", "/csi/a.sock", "--node-name", "worker-1", *extra]


def test_version_command():
    result = runner.invoke(cli_app.app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.startswith("csi-recovery: ")
    assert "Python Version:" in result.stdout


def test_run_bounces_and_prints_summary(wired, cluster):
    drivers, seen = wired
    drivers["/csi/a.sock"] = FakeDriver(
        DRIVER, endpoint="/csi/a.sock",
        capabilities={NodeCapability.STAGE_UNSTAGE_VOLUME, NodeCapability.VOLUME_CONDITION},
    )

    result = runner.invoke(cli_app.app, _args("--rpc-timeout", "4", "--poll-interval", "0.01"))

    assert result.exit_code == 0, result.stdout
    assert "RESTARTED=0 BOUNCED=1 SKIPPED=0 FAILED=0" in result.stdout
    assert cluster.replica_updates("Deployment", "app1") == [0, 3]
    assert seen["cluster"] == (None, "worker-1")
    assert seen["timeouts"] == [4.0]
    assert drivers["/csi/a.sock"].closed


def test_run_writes_events_file(wired, tmp_path):
    drivers, _ = wired
    drivers["/csi/a.sock"] = FakeDriver(DRIVER, endpoint="/csi/a.sock", capabilities={NodeCapability.VOLUME_CONDITION})
    events = tmp_path / "events.jsonl"

    result = runner.invoke(cli_app.app, _args("--events-file", str(events)))

    assert result.exit_code == 0, result.stdout
    types = [json.loads(l)["type"] for l in events.read_text().splitlines()]
    assert types == ["DriversDiscovered", "DriverHealthChecked", "PodRestarted", "RemediationSummary"]


def test_volume_failures_exit_2_only_with_flag(wired, cluster):
    drivers, _ = wired
    drivers["/csi/a.sock"] = FakeDriver(DRIVER, endpoint="/csi/a.sock", capabilities={NodeCapability.VOLUME_CONDITION})
    cluster.add_pod(make_pod("app1-rs-abc", "ns"))  # no owner: restart is refused

    assert runner.invoke(cli_app.app, _args()).exit_code == 0

    result = runner.invoke(cli_app.app, _args("--fail-on-error"))
    assert result.exit_code == 2
    assert "FAILED=1" in result.stdout


def test_missing_node_name_is_fatal(wired):
    result = runner.invoke(cli_app.app, ["run", "--endpoints", "/csi/a.sock"])
    assert result.exit_code == 1


def test_cluster_client_failure_is_fatal(wired, monkeypatch):
    def refuse(kubeconfig_path, node_name):
        raise ConfigError("kubeconfig not found")

    monkeypatch.setattr(cli_app, "new_cluster_client", refuse)
    result = runner.invoke(cli_app.app, _args("--kubeconfig", "/nope"))
    assert result.exit_code == 1


def test_driver_discovery_failure_is_fatal(wired, cluster):
    drivers, _ = wired
    broken = FakeDriver("x", endpoint="/csi/a.sock", identify_error=protocol_error())
    drivers["/csi/a.sock"] = broken

    result = runner.invoke(cli_app.app, _args())

    assert result.exit_code == 1
    assert broken.closed
    assert cluster.ops("update") == [] and cluster.ops("delete_pod") == []
