# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/remediation/controller.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from csi_recovery.csi.registry import DriverRegistry
from csi_recovery.errors import RevertFailedError
from csi_recovery.k8s.metrics import NodeVolumeMetric
from csi_recovery.k8s.owners import DEFAULT_MAX_DEPTH, OwnerRef, find_pod_owner
from csi_recovery.observers.dispatcher import EventBus
from csi_recovery.observers.events import new_ctx
from csi_recovery.volume.resolver import ClusterVolumeResolver, VolumeDriverResolver
from csi_recovery.workload.bounce import WorkloadBouncer
from csi_recovery.workload.restart import restart_pod
from .events import (
    DriverHealthChecked,
    PodRestarted,
    RemediationFailed,
    RemediationSummary,
    VolumeSkipped,
    WorkloadBounced,
)

log = logging.getLogger("csi_recovery")

RESTARTED = "RESTARTED"
BOUNCED = "BOUNCED"
SKIPPED = "SKIPPED"
FAILED = "FAILED"


@dataclass
class VolumeOutcome:
    namespace: str
    pod: str
    claim: str
    status: str                 # RESTARTED | BOUNCED | SKIPPED | FAILED
    driver: Optional[str] = None
    owner: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class RemediationReport:
    outcomes: List[VolumeOutcome] = field(default_factory=list)
    cancelled: bool = False

    def add(self, outcome: VolumeOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def failed(self) -> bool:
        return self.count(FAILED) > 0

    def summary(self) -> str:
        return (
            f"RESTARTED={self.count(RESTARTED)} BOUNCED={self.count(BOUNCED)} "
            f"SKIPPED={self.count(SKIPPED)} FAILED={self.count(FAILED)}"
        )


@dataclass
class PassState:
    """Bookkeeping shared by the volumes of one pass."""

    bounced: Set[Tuple[str, str, str]] = field(default_factory=set)   # (namespace, kind, name)
    restarted: Set[Tuple[str, str]] = field(default_factory=set)      # (namespace, pod)
    owners: Dict[Tuple[str, str], OwnerRef] = field(default_factory=dict)


def check_driver_health(
    registry: DriverRegistry,
    *,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> Dict[str, bool]:
    """
    Probe every registered driver. Failures are logged and reported as
    unhealthy; the driver stays registered either way.
    """
    bus = bus or EventBus()
    run_ctx = run_ctx or new_ctx(node="")
    health: Dict[str, bool] = {}

    for name, client in registry.items():
        try:
            healthy = client.probe()
        except Exception as exc:
            log.error("failed to check if the node service is healthy driver=%s error=%s", name, exc)
            health[name] = False
            bus.emit(DriverHealthChecked(driver=name, healthy=False, error=str(exc), **run_ctx))
            continue
        if not healthy:
            log.error("node service is not healthy driver=%s", name)
        health[name] = healthy
        bus.emit(DriverHealthChecked(driver=name, healthy=healthy, **run_ctx))
    return health


class RemediationController:
    """
    One remediation pass over the volumes mounted on a node.

    For every claim-backed volume: resolve the CSI driver, ask it for its node
    capabilities, then restart the pod (no STAGE_UNSTAGE_VOLUME) or bounce the
    pod's top-level controller (STAGE_UNSTAGE_VOLUME). Per-volume failures are
    logged and recorded; the pass always moves on to the next volume.
    """

    def __init__(
        self,
        *,
        cluster,
        registry: DriverRegistry,
        bouncer: WorkloadBouncer,
        resolver: Optional[VolumeDriverResolver] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
        dedupe_owners: bool = False,
        owner_max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.cluster = cluster
        self.registry = registry
        self.bouncer = bouncer
        self.resolver = resolver or ClusterVolumeResolver(cluster)
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(node="")
        self.dedupe_owners = dedupe_owners
        self.owner_max_depth = owner_max_depth

    # ------------------------------------------------------------------
    def _skip(self, metric: NodeVolumeMetric, reason: str, driver: Optional[str] = None) -> VolumeOutcome:
        claim = metric.claim.name if metric.claim else ""
        self.bus.emit(VolumeSkipped(
            namespace=metric.namespace, pod=metric.pod_name, claim=claim,
            reason=reason, driver=driver, **self.run_ctx,
        ))
        return VolumeOutcome(metric.namespace, metric.pod_name, claim, SKIPPED, driver=driver, reason=reason)

    def _fail(self, metric: NodeVolumeMetric, driver: str, action: str, exc: Exception) -> VolumeOutcome:
        stuck = isinstance(exc, RevertFailedError)
        if stuck:
            log.critical(
                "workload may be stuck at zero replicas, manual intervention required "
                "namespace=%s pod=%s driver=%s error=%s",
                metric.namespace, metric.pod_name, driver, exc,
            )
        else:
            log.error(
                "failed to %s namespace=%s pod=%s driver=%s error=%s",
                "restart pod" if action == "restart" else "scale owner",
                metric.namespace, metric.pod_name, driver, exc,
            )
        self.bus.emit(RemediationFailed(
            namespace=metric.namespace, pod=metric.pod_name, driver=driver,
            action=action, error=str(exc), stuck=stuck, **self.run_ctx,
        ))
        return VolumeOutcome(
            metric.namespace, metric.pod_name, metric.claim.name, FAILED, driver=driver, reason=str(exc),
        )

    # ------------------------------------------------------------------
    def remediate_volume(
        self,
        metric: NodeVolumeMetric,
        *,
        cancel: Optional[threading.Event] = None,
        state: Optional[PassState] = None,
    ) -> VolumeOutcome:
        state = state or PassState()
        claim = metric.claim
        if claim is None:
            return self._skip(metric, "volume has no claim")

        # a) which driver backs the claim
        try:
            driver = self.resolver.driver_name(metric.pod_uid, metric.pod_name, claim.name, claim.namespace)
        except Exception as exc:
            log.error(
                "failed to get driver name namespace=%s pod=%s claim=%s error=%s",
                claim.namespace, metric.pod_name, claim.name, exc,
            )
            return self._skip(metric, f"driver lookup failed: {exc}")

        # b) is it one of ours
        client = self.registry.get(driver)
        if client is None:
            log.info("driver not found driver=%s pod=%s", driver, metric.pod_name)
            return self._skip(metric, "driver not registered", driver)

        # c) what can it do
        try:
            supports_condition = client.supports_volume_condition()
        except Exception as exc:
            log.error("failed to check if the node supports volume condition driver=%s error=%s", driver, exc)
            return self._skip(metric, f"capability query failed: {exc}", driver)
        if not supports_condition:
            log.info("node does not support volume condition driver=%s", driver)
            return self._skip(metric, "driver does not report volume condition", driver)

        try:
            supports_stage = client.supports_stage_unstage()
        except Exception as exc:
            log.error("failed to check if the node supports stage unstage driver=%s error=%s", driver, exc)
            return self._skip(metric, f"capability query failed: {exc}", driver)

        namespace = metric.namespace
        pod_key = (namespace, metric.pod_name)

        # d) no stage/unstage: the pod has to go
        if not supports_stage:
            log.info("node does not support stage unstage driver=%s", driver)
            if pod_key in state.restarted:
                log.info("pod %s/%s already restarted in this pass", namespace, metric.pod_name)
                return self._skip(metric, "pod already restarted", driver)
            try:
                owner = restart_pod(self.cluster, namespace, metric.pod_name, max_depth=self.owner_max_depth)
            except Exception as exc:
                return self._fail(metric, driver, "restart", exc)
            state.restarted.add(pod_key)
            self.bus.emit(PodRestarted(
                namespace=namespace, pod=metric.pod_name, driver=driver,
                owner=owner.name, owner_kind=owner.kind, **self.run_ctx,
            ))
            return VolumeOutcome(namespace, metric.pod_name, claim.name, RESTARTED, driver=driver, owner=owner.name)

        # e) stage/unstage: bounce the owning controller
        log.info("node supports stage unstage driver=%s", driver)
        try:
            owner = state.owners.get(pod_key)
            if owner is None:
                owner = find_pod_owner(self.cluster, namespace, metric.pod_name, max_depth=self.owner_max_depth)
            key = (namespace, owner.kind, owner.name)
            if self.dedupe_owners and key in state.bounced:
                log.info("%s %s/%s already bounced in this pass", owner.kind, namespace, owner.name)
                return self._skip(metric, "owner already bounced", driver)
            self.bouncer.bounce(namespace, owner.name, owner.kind, target=0, cancel=cancel)
        except Exception as exc:
            return self._fail(metric, driver, "bounce", exc)

        state.bounced.add(key)
        self.bus.emit(WorkloadBounced(
            namespace=namespace, pod=metric.pod_name, driver=driver,
            owner=owner.name, owner_kind=owner.kind, **self.run_ctx,
        ))
        return VolumeOutcome(namespace, metric.pod_name, claim.name, BOUNCED, driver=driver, owner=owner.name)

    def _resolve_owners(self, metrics: List[NodeVolumeMetric], state: PassState) -> None:
        """
        Record the top owner of every claim-backed pod up front. Scaling a
        Deployment down replaces its pods under new names, so siblings have
        to be matched to their owner before the first bounce.
        """
        for metric in metrics:
            pod_key = (metric.namespace, metric.pod_name)
            if metric.claim is None or pod_key in state.owners:
                continue
            try:
                state.owners[pod_key] = find_pod_owner(
                    self.cluster, metric.namespace, metric.pod_name, max_depth=self.owner_max_depth,
                )
            except Exception as exc:
                # left unresolved; the per-volume step retries and reports it
                log.debug("could not resolve owner of pod %s/%s: %s", metric.namespace, metric.pod_name, exc)

    def run(
        self,
        metrics: Iterable[NodeVolumeMetric],
        *,
        cancel: Optional[threading.Event] = None,
    ) -> RemediationReport:
        """Remediate every claim-backed volume in *metrics*, in order."""
        metrics = list(metrics)
        report = RemediationReport()
        state = PassState()
        if self.dedupe_owners:
            self._resolve_owners(metrics, state)

        for metric in metrics:
            if cancel is not None and cancel.is_set():
                log.warning("shutdown requested, stopping remediation pass")
                report.cancelled = True
                break
            if metric.claim is None:
                continue
            report.add(self.remediate_volume(metric, cancel=cancel, state=state))

        log.info("remediation pass finished %s", report.summary())
        self.bus.emit(RemediationSummary(
            restarted=report.count(RESTARTED),
            bounced=report.count(BOUNCED),
            skipped=report.count(SKIPPED),
            failed=report.count(FAILED),
            **self.run_ctx,
        ))
        return report
