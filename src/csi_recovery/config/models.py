# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/config/models.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RecoveryConfig(BaseModel):
    """Settings for one remediation pass on one node."""

    endpoints: List[str]                       # CSI node plugin sockets
    node_name: str
    kubelet_path: str = "/var/lib/kubelet"
    kubeconfig_path: Optional[str] = None      # None -> in-cluster config

    # Bounce tuning
    quiesce_timeout_seconds: float = Field(default=120.0, gt=0)
    poll_interval_seconds: float = Field(default=2.0, gt=0)

    # Driver RPC deadline
    rpc_timeout_seconds: float = Field(default=10.0, gt=0)

    owner_chain_max_depth: int = Field(default=10, ge=1)
    dedupe_owners: bool = False

    @field_validator("endpoints", mode="before")
    @classmethod
    def _split_endpoints(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(v).strip() for v in value if str(v).strip()]

    @field_validator("endpoints")
    @classmethod
    def _require_endpoints(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("no CSI endpoints provided")
        return value

    @field_validator("node_name")
    @classmethod
    def _require_node_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("node name is required")
        return value

    @field_validator("kubeconfig_path", mode="before")
    @classmethod
    def _empty_kubeconfig_is_in_cluster(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
