# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/k8s/owners.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from csi_recovery.errors import OwnerChainTooDeep

REPLICASET = "ReplicaSet"

DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class OwnerRef:
    name: str
    kind: str

    def __bool__(self) -> bool:
        return bool(self.name)


NO_OWNER = OwnerRef("", "")


def owner_references(obj: Any) -> Sequence[Any]:
    meta = getattr(obj, "metadata", None)
    return list(getattr(meta, "owner_references", None) or [])


def find_top_owner(
    cluster,
    namespace: str,
    owner_refs: Optional[Sequence[Any]],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> OwnerRef:
    """
    Walk owner references up to the top-level controller.

    Only the first reference is followed. ReplicaSets are looked up and their
    own owners followed; Deployment, StatefulSet, DaemonSet and any other kind
    end the walk. Returns NO_OWNER for an empty list. Lookup failures
    propagate.
    """
    refs = list(owner_refs or [])
    for _ in range(max_depth):
        if not refs:
            return NO_OWNER

        ref = refs[0]
        if ref.kind != REPLICASET:
            # known controllers and unrecognised kinds alike are the top
            return OwnerRef(ref.name, ref.kind)

        rs = cluster.get_replica_set(namespace, ref.name)
        refs = owner_references(rs)

    raise OwnerChainTooDeep(
        f"owner chain in namespace {namespace} is deeper than {max_depth} levels"
    )


def find_pod_owner(cluster, namespace: str, pod_name: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> OwnerRef:
    pod = cluster.get_pod(namespace, pod_name)
    return find_top_owner(cluster, namespace, owner_references(pod), max_depth=max_depth)
