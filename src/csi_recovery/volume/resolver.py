# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/volume/resolver.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from csi_recovery.errors import MalformedVolumeData, NotACSIVolume, VolumeDataNotFound

log = logging.getLogger("csi_recovery")

PROVISIONER_ANNOTATION = "volume.kubernetes.io/storage-provisioner"
LEGACY_PROVISIONER_ANNOTATION = "volume.beta.kubernetes.io/storage-provisioner"

CSI_PLUGIN_DIR = "kubernetes.io~csi"
VOL_DATA_FILE = "vol_data.json"


class VolumeDriverResolver(Protocol):
    def driver_name(self, pod_uid: str, pod_name: str, claim_name: str, claim_namespace: str) -> str: ...


class ClusterVolumeResolver:
    """Resolve the driver from PVC annotations, falling back to the bound PV."""

    def __init__(self, cluster):
        self.cluster = cluster

    def driver_name(self, pod_uid: str, pod_name: str, claim_name: str, claim_namespace: str) -> str:
        pvc = self.cluster.get_pvc(claim_namespace, claim_name)

        annotations = getattr(pvc.metadata, "annotations", None) or {}
        for key in (PROVISIONER_ANNOTATION, LEGACY_PROVISIONER_ANNOTATION):
            if annotations.get(key):
                return annotations[key]

        pv_name = pvc.spec.volume_name
        pv = self.cluster.get_pv(pv_name)
        csi = getattr(pv.spec, "csi", None)
        if csi is None:
            raise NotACSIVolume(pv_name)
        return csi.driver


def vol_data_path(kubelet_path: str | Path, pod_uid: str, pv_name: str) -> Path:
    """<kubelet>/pods/<podUID>/volumes/kubernetes.io~csi/<pvName>/vol_data.json"""
    return Path(kubelet_path) / "pods" / pod_uid / "volumes" / CSI_PLUGIN_DIR / pv_name / VOL_DATA_FILE


def read_vol_data(path: str | Path) -> str:
    """Return ``driverName`` from a kubelet vol_data.json file."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise VolumeDataNotFound(f"volume data file {path} does not exist") from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise MalformedVolumeData(f"failed to unmarshal volume data {path}: {exc}") from exc

    driver = data.get("driverName") if isinstance(data, dict) else None
    if not isinstance(driver, str):
        raise MalformedVolumeData(f"volume data {path} has no driverName string")
    return driver


class LocalAgentVolumeResolver:
    """
    Resolve the driver from the kubelet's on-disk CSI volume metadata.

    Not used by the remediation loop.
    """

    def __init__(self, kubelet_path: str | Path):
        self.kubelet_path = Path(kubelet_path)

    def driver_name(self, pod_uid: str, pod_name: str, claim_name: str, claim_namespace: str) -> str:
        # TODO: look up the PV bound to claim_name; until then the PV segment
        # of the path is empty and only a file directly under kubernetes.io~csi
        # is found.
        pv_name = ""
        path = vol_data_path(self.kubelet_path, pod_uid, pv_name)
        log.debug("reading volume data for pod %s from %s", pod_name, path)
        return read_vol_data(path)
