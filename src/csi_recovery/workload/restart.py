# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/workload/restart.py
from __future__ import annotations

import logging

from csi_recovery.errors import NoOwnerFound
from csi_recovery.k8s.owners import DEFAULT_MAX_DEPTH, OwnerRef, find_pod_owner

log = logging.getLogger("csi_recovery")


def restart_pod(cluster, namespace: str, pod_name: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> OwnerRef:
    """
    Delete *pod_name* so its controller recreates it.

    Refuses (NoOwnerFound) when nothing owns the pod, since a bare pod would
    simply disappear. Does not wait for the replacement.
    """
    owner = find_pod_owner(cluster, namespace, pod_name, max_depth=max_depth)
    if not owner:
        raise NoOwnerFound(namespace, pod_name)

    cluster.delete_pod(namespace, pod_name)
    log.info("deleted pod %s/%s, %s %s will recreate it", namespace, pod_name, owner.kind, owner.name)
    return owner
