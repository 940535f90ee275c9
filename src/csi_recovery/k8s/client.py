# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/k8s/client.py
from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import ValidationError

from csi_recovery.errors import (
    ClusterAPIError,
    ConfigError,
    ConflictError,
    ObjectNotFound,
    UnsupportedOwnerKind,
)
from .metrics import NodeSummary

log = logging.getLogger("csi_recovery")

DEPLOYMENT = "Deployment"
STATEFULSET = "StatefulSet"
SCALABLE_KINDS = (DEPLOYMENT, STATEFULSET)


class ClusterClient(Protocol):
    """
    The Kubernetes operations remediation needs. Objects come back as
    kubernetes client models (or anything with the same attributes).
    """

    def get_pod(self, namespace: str, name: str) -> Any: ...
    def delete_pod(self, namespace: str, name: str) -> None: ...
    def get_replica_set(self, namespace: str, name: str) -> Any: ...
    def get_pvc(self, namespace: str, name: str) -> Any: ...
    def get_pv(self, name: str) -> Any: ...
    def get_workload(self, namespace: str, name: str, kind: str) -> Any: ...
    def update_workload(self, namespace: str, kind: str, body: Any) -> Any: ...
    def get_node_summary(self) -> NodeSummary: ...


def _translate(exc: ApiException, what: str) -> ClusterAPIError:
    msg = f"{what}: {exc.status} {exc.reason}"
    if exc.status == 404:
        return ObjectNotFound(msg, status=exc.status)
    if exc.status == 409:
        return ConflictError(msg, status=exc.status)
    return ClusterAPIError(msg, status=exc.status)


class KubeClusterClient:
    def __init__(self, api_client: client.ApiClient, node_name: str):
        self.node_name = node_name
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    def get_pod(self, namespace: str, name: str):
        try:
            return self.core.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as exc:
            raise _translate(exc, f"failed to get pod {name} in namespace {namespace}") from exc

    def delete_pod(self, namespace: str, name: str) -> None:
        try:
            self.core.delete_namespaced_pod(name=name, namespace=namespace)
        except ApiException as exc:
            raise _translate(exc, f"failed to delete pod {name} in namespace {namespace}") from exc

    def get_replica_set(self, namespace: str, name: str):
        try:
            return self.apps.read_namespaced_replica_set(name=name, namespace=namespace)
        except ApiException as exc:
            raise _translate(exc, f"failed to get ReplicaSet {name} in namespace {namespace}") from exc

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def get_pvc(self, namespace: str, name: str):
        try:
            return self.core.read_namespaced_persistent_volume_claim(name=name, namespace=namespace)
        except ApiException as exc:
            raise _translate(exc, f"failed to get PVC {name} in namespace {namespace}") from exc

    def get_pv(self, name: str):
        try:
            return self.core.read_persistent_volume(name=name)
        except ApiException as exc:
            raise _translate(exc, f"failed to get PV {name}") from exc

    # ------------------------------------------------------------------
    # Scalable workloads
    # ------------------------------------------------------------------

    def get_workload(self, namespace: str, name: str, kind: str):
        try:
            if kind == DEPLOYMENT:
                return self.apps.read_namespaced_deployment(name=name, namespace=namespace)
            if kind == STATEFULSET:
                return self.apps.read_namespaced_stateful_set(name=name, namespace=namespace)
        except ApiException as exc:
            raise _translate(exc, f"failed to get {kind} {name} in namespace {namespace}") from exc
        raise UnsupportedOwnerKind(kind)

    def update_workload(self, namespace: str, kind: str, body):
        """Replace the object; resourceVersion on *body* makes this a CAS."""
        name = body.metadata.name
        try:
            if kind == DEPLOYMENT:
                return self.apps.replace_namespaced_deployment(name=name, namespace=namespace, body=body)
            if kind == STATEFULSET:
                return self.apps.replace_namespaced_stateful_set(name=name, namespace=namespace, body=body)
        except ApiException as exc:
            raise _translate(exc, f"failed to update {kind} {name} in namespace {namespace}") from exc
        raise UnsupportedOwnerKind(kind)

    # ------------------------------------------------------------------
    # Node metrics
    # ------------------------------------------------------------------

    def get_node_summary(self) -> NodeSummary:
        """GET /api/v1/nodes/<node>/proxy/stats/summary"""
        try:
            # Raw body: the generated client would stringify the decoded dict.
            resp = self.core.connect_get_node_proxy_with_path(
                name=self.node_name,
                path="stats/summary",
                _preload_content=False,
            )
        except ApiException as exc:
            raise _translate(exc, f"failed to get stats summary for node {self.node_name}") from exc

        try:
            data = json.loads(resp.data)
        except ValueError as exc:
            raise ClusterAPIError(f"stats summary for node {self.node_name} is not valid JSON: {exc}") from exc
        try:
            return NodeSummary.model_validate(data)
        except ValidationError as exc:
            raise ClusterAPIError(f"stats summary for node {self.node_name} has an unexpected shape: {exc}") from exc


def new_cluster_client(kubeconfig_path: Optional[str], node_name: str) -> KubeClusterClient:
    """
    Build a client from a kubeconfig file, or from the in-cluster service
    account when no path is given.
    """
    try:
        if kubeconfig_path:
            if not os.path.exists(kubeconfig_path):
                raise ConfigError(f"error fetching kubeconfig path: {kubeconfig_path}")
            api_client = config.new_client_from_config(config_file=kubeconfig_path)
        else:
            config.load_incluster_config()
            api_client = client.ApiClient()
    except ConfigException as exc:
        raise ConfigError(f"failed to build kubernetes client config: {exc}") from exc

    log.debug("kubernetes client ready node=%s kubeconfig=%s", node_name, kubeconfig_path or "<in-cluster>")
    return KubeClusterClient(api_client, node_name)
