# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/workload/bounce.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from csi_recovery.errors import RevertFailedError, UnsupportedOwnerKind
from csi_recovery.k8s.client import SCALABLE_KINDS
from csi_recovery.k8s.retry import DEFAULT_RETRY, RetryPolicy, retry_on_conflict
from csi_recovery.k8s.wait import poll_until

log = logging.getLogger("csi_recovery")


def desired_replicas(obj) -> int:
    replicas = obj.spec.replicas
    # API server defaults an unset spec.replicas to 1
    return 1 if replicas is None else int(replicas)


def observed_replicas(obj) -> int:
    status = getattr(obj, "status", None)
    # zero is omitted from the wire, so None means 0
    return int(getattr(status, "replicas", None) or 0)


class WorkloadBouncer:
    """
    Pulse a Deployment or StatefulSet to a target replica count and back.

    Every path out of ``bounce`` leaves the workload at its original desired
    replica count, or raises RevertFailedError.
    """

    def __init__(
        self,
        cluster,
        *,
        quiesce_timeout: float = 120.0,
        poll_interval: float = 2.0,
        retry_policy: RetryPolicy = DEFAULT_RETRY,
    ):
        self.cluster = cluster
        self.quiesce_timeout = quiesce_timeout
        self.poll_interval = poll_interval
        self.retry_policy = retry_policy

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _set_replicas(self, namespace: str, name: str, kind: str, count: int) -> None:
        def _apply():
            obj = self.cluster.get_workload(namespace, name, kind)
            obj.spec.replicas = count
            self.cluster.update_workload(namespace, kind, obj)

        def _on_conflict(attempt: int, exc: Exception) -> None:
            log.debug("conflict scaling %s %s/%s (attempt %d): %s", kind, namespace, name, attempt, exc)

        retry_on_conflict(_apply, policy=self.retry_policy, on_retry=_on_conflict)
        log.info("scaled %s %s/%s to %d replicas", kind, namespace, name, count)

    def _wait_for_replicas(
        self,
        namespace: str,
        name: str,
        kind: str,
        target: int,
        cancel: Optional[threading.Event],
    ) -> None:
        def _settled() -> bool:
            obj = self.cluster.get_workload(namespace, name, kind)
            return observed_replicas(obj) == target

        poll_until(
            _settled,
            interval=self.poll_interval,
            timeout=self.quiesce_timeout,
            cancel=cancel,
            description=f"{kind} {namespace}/{name} to reach {target} replicas",
        )

    def _restore(self, namespace: str, name: str, kind: str, original: int, cause: Optional[BaseException]) -> None:
        try:
            self._set_replicas(namespace, name, kind, original)
        except Exception as exc:
            what = "revert" if cause is not None else "restore"
            raise RevertFailedError(
                f"failed to {what} {kind} {namespace}/{name} to {original} replicas: {exc}",
                namespace=namespace,
                name=name,
                kind=kind,
                original_replicas=original,
                cause=cause,
            ) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def bounce(
        self,
        namespace: str,
        name: str,
        kind: str,
        *,
        target: int = 0,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        """
        Scale *name* to *target*, wait for observed replicas to follow, then
        scale back. Returns the original replica count.

        If the wait fails (timeout, poll error or cancellation) the original
        count is restored without the cancel token and the wait error is
        re-raised.
        """
        if kind not in SCALABLE_KINDS:
            raise UnsupportedOwnerKind(kind)

        original = desired_replicas(self.cluster.get_workload(namespace, name, kind))
        log.info("bouncing %s %s/%s: %d -> %d -> %d", kind, namespace, name, original, target, original)

        self._set_replicas(namespace, name, kind, target)

        try:
            self._wait_for_replicas(namespace, name, kind, target, cancel)
        except Exception as exc:
            log.warning("%s %s/%s did not quiesce, reverting to %d replicas: %s", kind, namespace, name, original, exc)
            self._restore(namespace, name, kind, original, cause=exc)
            raise

        self._restore(namespace, name, kind, original, cause=None)
        return original

