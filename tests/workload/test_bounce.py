import threading

import pytest

from csi_recovery.errors import (
    ClusterAPIError,
    ConflictExhaustedError,
    OperationCancelled,
    QuiesceTimeoutError,
    RevertFailedError,
    UnsupportedOwnerKind,
)
from csi_recovery.k8s.retry import RetryPolicy
from csi_recovery.workload.bounce import WorkloadBouncer

from fakes import FakeCluster, make_workload

NO_WAIT = RetryPolicy(steps=5, duration=0, jitter=0)


def _bouncer(cluster, **kw):
    kw.setdefault("poll_interval", 0.001)
    kw.setdefault("quiesce_timeout", 0.05)
    kw.setdefault("retry_policy", NO_WAIT)
    return WorkloadBouncer(cluster, **kw)


@pytest.mark.parametrize("kind", ["Deployment", "StatefulSet"])
def test_bounce_scales_to_zero_and_back(kind):
    cluster = FakeCluster()
    cluster.add_workload(kind, make_workload("app1", "ns", replicas=3))

    original = _bouncer(cluster).bounce("ns", "app1", kind)

    assert original == 3
    assert cluster.replica_updates(kind, "app1") == [0, 3]
    assert cluster.workload("ns", kind, "app1").spec.replicas == 3


@pytest.mark.parametrize("kind", ["DaemonSet", "ReplicaSet", "", "Job"])
def test_unsupported_kinds_are_rejected_before_any_mutation(kind):
    cluster = FakeCluster()
    with pytest.raises(UnsupportedOwnerKind):
        _bouncer(cluster).bounce("ns", "x", kind)
    assert cluster.calls == []


def test_conflicts_are_retried_and_nothing_is_dropped():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=2))
    cluster.conflicts = 3

    _bouncer(cluster).bounce("ns", "app1", "Deployment")

    assert len(cluster.ops("conflict")) == 3
    assert cluster.replica_updates("Deployment", "app1") == [0, 2]


def test_scale_down_conflicts_exhausted_leaves_workload_untouched():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=2))
    cluster.conflicts = 100

    with pytest.raises(ConflictExhaustedError):
        _bouncer(cluster).bounce("ns", "app1", "Deployment")

    assert cluster.ops("update") == []
    assert cluster.workload("ns", "Deployment", "app1").spec.replicas == 2


def test_quiesce_timeout_reverts_and_reports_timeout():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=3))
    cluster.converge = False  # pods never go away

    with pytest.raises(QuiesceTimeoutError):
        _bouncer(cluster).bounce("ns", "app1", "Deployment")

    assert cluster.replica_updates("Deployment", "app1") == [0, 3]
    assert cluster.workload("ns", "Deployment", "app1").spec.replicas == 3


def test_poll_error_aborts_wait_and_reverts():
    cluster = FakeCluster()
    cluster.add_workload("StatefulSet", make_workload("db", "ns", replicas=1))
    cluster.converge = False
    bouncer = _bouncer(cluster, quiesce_timeout=5)

    real_get = cluster.get_workload
    gets = {"n": 0}

    def flaky_get(namespace, name, kind):
        gets["n"] += 1
        # 1: original, 2: scale-down refetch, 3: first poll
        if gets["n"] == 3:
            raise ClusterAPIError("etcd timeout", status=504)
        return real_get(namespace, name, kind)

    cluster.get_workload = flaky_get

    with pytest.raises(ClusterAPIError, match="etcd timeout"):
        bouncer.bounce("ns", "db", "StatefulSet")

    assert cluster.replica_updates("StatefulSet", "db") == [0, 1]


def test_failed_revert_raises_distinct_error_carrying_quiesce_error():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=3))
    cluster.converge = False
    cluster.fail_update_when = lambda kind, name, replicas: replicas == 3

    with pytest.raises(RevertFailedError) as ei:
        _bouncer(cluster).bounce("ns", "app1", "Deployment")

    err = ei.value
    assert isinstance(err.cause, QuiesceTimeoutError)
    assert isinstance(err.__cause__, ClusterAPIError)
    assert err.original_replicas == 3
    assert (err.namespace, err.kind, err.name) == ("ns", "Deployment", "app1")


def test_failed_restore_on_happy_path_is_also_revert_failure():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=4))
    cluster.fail_update_when = lambda kind, name, replicas: replicas == 4

    with pytest.raises(RevertFailedError) as ei:
        _bouncer(cluster).bounce("ns", "app1", "Deployment")
    assert ei.value.cause is None


def test_cancellation_still_reverts_without_the_token():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=3))
    cluster.converge = False
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        _bouncer(cluster, quiesce_timeout=60).bounce("ns", "app1", "Deployment", cancel=cancel)

    assert cluster.workload("ns", "Deployment", "app1").spec.replicas == 3


def test_unset_spec_replicas_restores_api_default():
    cluster = FakeCluster()
    cluster.add_workload("Deployment", make_workload("app1", "ns", replicas=None, observed=1))

    assert _bouncer(cluster).bounce("ns", "app1", "Deployment") == 1
    assert cluster.replica_updates("Deployment", "app1") == [0, 1]
