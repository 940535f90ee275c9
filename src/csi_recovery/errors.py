# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/errors.py
from __future__ import annotations

from typing import Optional


class RecoveryError(RuntimeError):
    """Base class for csi-recovery failures."""


class ConfigError(RecoveryError):
    """Raised when a required setting is missing or invalid."""


class ProtocolError(RecoveryError):
    """Raised when a CSI driver socket is unreachable or answers with garbage."""

    def __init__(self, message: str, *, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


# ---------------------------------------------------------------------
# Cluster API
# ---------------------------------------------------------------------
class ClusterAPIError(RecoveryError):
    """Generic failure talking to the Kubernetes API server."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ObjectNotFound(ClusterAPIError):
    """The requested object does not exist (HTTP 404)."""


class ConflictError(ClusterAPIError):
    """An update lost an optimistic-concurrency race (HTTP 409)."""


class ConflictExhaustedError(ClusterAPIError):
    """Retry-on-conflict gave up before an update went through."""


class OwnerChainTooDeep(ClusterAPIError):
    """Owner references kept pointing at more ReplicaSets than allowed."""


# ---------------------------------------------------------------------
# Workload remediation
# ---------------------------------------------------------------------
class UnsupportedOwnerKind(RecoveryError):
    def __init__(self, kind: str):
        super().__init__(f"unsupported owner kind: {kind!r}")
        self.kind = kind


class NoOwnerFound(RecoveryError):
    def __init__(self, namespace: str, pod_name: str):
        super().__init__(f"no owner found for pod {pod_name} in namespace {namespace}")
        self.namespace = namespace
        self.pod_name = pod_name


class QuiesceTimeoutError(RecoveryError, TimeoutError):
    """Observed replicas did not reach the target before the deadline."""


class OperationCancelled(RecoveryError):
    """A blocking wait was aborted because shutdown was requested."""


class RevertFailedError(RecoveryError):
    """
    The workload could not be scaled back to its original replica count.

    This is the one error that means a controller may be stuck at zero
    replicas. ``cause`` is the error that triggered the revert (None when the
    happy-path restore itself failed); the restore failure is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        namespace: str,
        name: str,
        kind: str,
        original_replicas: int,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.namespace = namespace
        self.name = name
        self.kind = kind
        self.original_replicas = original_replicas
        self.cause = cause


# ---------------------------------------------------------------------
# Volume driver resolution
# ---------------------------------------------------------------------
class NotACSIVolume(RecoveryError):
    def __init__(self, pv_name: str):
        super().__init__(f"PV {pv_name} is not a CSI volume")
        self.pv_name = pv_name


class VolumeDataNotFound(RecoveryError):
    """The kubelet vol_data.json file for a volume does not exist."""


class MalformedVolumeData(RecoveryError):
    """The kubelet vol_data.json file could not be parsed."""
