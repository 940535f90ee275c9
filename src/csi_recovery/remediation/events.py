# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/remediation/events.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from csi_recovery.observers.events import BaseEvent


# ---------------------------------------------------------------------
# Driver discovery / health
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DriversDiscovered(BaseEvent):
    drivers: List[str]

@dataclass(frozen=True)
class DriverHealthChecked(BaseEvent):
    driver: str
    healthy: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Per-volume remediation
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class VolumeSkipped(BaseEvent):
    namespace: str
    pod: str
    claim: str
    reason: str
    driver: Optional[str] = None

@dataclass(frozen=True)
class PodRestarted(BaseEvent):
    namespace: str
    pod: str
    driver: str
    owner: str
    owner_kind: str

@dataclass(frozen=True)
class WorkloadBounced(BaseEvent):
    namespace: str
    pod: str
    driver: str
    owner: str
    owner_kind: str

@dataclass(frozen=True)
class RemediationFailed(BaseEvent):
    namespace: str
    pod: str
    driver: str
    action: str          # "restart" | "bounce"
    error: str
    stuck: bool = False  # True when a workload may be left at zero replicas


# ---------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RemediationSummary(BaseEvent):
    restarted: int
    bounced: int
    skipped: int
    failed: int
