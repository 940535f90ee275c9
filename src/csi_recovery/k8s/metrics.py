# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/k8s/metrics.py
"""
Read-only view of the kubelet stats/summary document.

Only the fields remediation needs are modelled; everything else in the
summary (cpu, memory, network, usage numbers) is ignored.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _SummaryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PodReference(_SummaryModel):
    name: str
    namespace: str = ""
    uid: str = ""


class PVCReference(_SummaryModel):
    name: str
    namespace: str


class VolumeStats(_SummaryModel):
    name: str = ""
    pvc_ref: Optional[PVCReference] = Field(default=None, alias="pvcRef")


class PodStats(_SummaryModel):
    pod_ref: PodReference = Field(alias="podRef")
    volume_stats: List[VolumeStats] = Field(default_factory=list, alias="volume")


class NodeSummary(_SummaryModel):
    pods: List[PodStats] = Field(default_factory=list)

    def volume_metrics(self) -> Iterator["NodeVolumeMetric"]:
        """One entry per (pod, volume), in summary order."""
        for pod in self.pods:
            for vol in pod.volume_stats:
                yield NodeVolumeMetric(
                    pod_name=pod.pod_ref.name,
                    pod_uid=pod.pod_ref.uid,
                    pod_namespace=pod.pod_ref.namespace,
                    volume_name=vol.name,
                    claim=vol.pvc_ref,
                )


@dataclass(frozen=True)
class NodeVolumeMetric:
    pod_name: str
    pod_uid: str
    pod_namespace: str
    volume_name: str
    claim: Optional[PVCReference] = None

    @property
    def namespace(self) -> str:
        """Namespace for pod operations; falls back to the claim's."""
        if self.pod_namespace:
            return self.pod_namespace
        return self.claim.namespace if self.claim else ""
