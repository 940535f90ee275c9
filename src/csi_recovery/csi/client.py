# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/csi/client.py
from __future__ import annotations

import logging
from typing import Optional, Protocol, Set

import grpc

from csi_recovery.errors import ProtocolError
from . import proto
from .proto import NodeCapability

log = logging.getLogger("csi_recovery")


class DriverClient(Protocol):
    """
    Contract for talking to one CSI node plugin.
    Implementations never retry; callers decide if a failure is fatal.
    """

    endpoint: str

    def identify(self) -> str: ...
    def probe(self) -> bool: ...
    def get_capabilities(self) -> Set[NodeCapability]: ...
    def supports_stage_unstage(self) -> bool: ...
    def supports_volume_condition(self) -> bool: ...
    def close(self) -> None: ...


def grpc_target(endpoint: str) -> str:
    """
    Normalise a driver address to a gRPC target.
    "/csi/csi.sock" -> "unix:///csi/csi.sock"; unix: targets pass through.
    """
    endpoint = endpoint.strip()
    if endpoint.startswith("unix:"):
        return endpoint
    if endpoint.startswith("/"):
        return f"unix://{endpoint}"
    return endpoint


class GrpcDriverClient:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 10.0,
        channel: Optional[grpc.Channel] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout

        if channel is None:
            target = grpc_target(endpoint)
            log.info("creating gRPC connection protocol=unix endpoint=%s", target)
            channel = grpc.insecure_channel(
                target,
                options=[("grpc.default_authority", "localhost")],
            )
        self._channel = channel

        self._get_plugin_info = channel.unary_unary(
            proto.method(proto.IDENTITY_SERVICE, "GetPluginInfo"),
            request_serializer=proto.GetPluginInfoRequest.SerializeToString,
            response_deserializer=proto.GetPluginInfoResponse.FromString,
        )
        self._probe = channel.unary_unary(
            proto.method(proto.IDENTITY_SERVICE, "Probe"),
            request_serializer=proto.ProbeRequest.SerializeToString,
            response_deserializer=proto.ProbeResponse.FromString,
        )
        self._node_get_capabilities = channel.unary_unary(
            proto.method(proto.NODE_SERVICE, "NodeGetCapabilities"),
            request_serializer=proto.NodeGetCapabilitiesRequest.SerializeToString,
            response_deserializer=proto.NodeGetCapabilitiesResponse.FromString,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._channel.close()

    def __enter__(self) -> "GrpcDriverClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"GrpcDriverClient(endpoint={self.endpoint!r})"

    # ------------------------------------------------------------------
    # RPCs
    # ------------------------------------------------------------------

    def _call(self, rpc, request, name: str):
        try:
            resp = rpc(request, timeout=self.timeout)
        except grpc.RpcError as exc:
            code = exc.code() if hasattr(exc, "code") else None
            details = exc.details() if hasattr(exc, "details") else str(exc)
            raise ProtocolError(
                f"{name} failed on {self.endpoint}: {code}: {details}",
                endpoint=self.endpoint,
            ) from exc
        if resp is None:
            raise ProtocolError(f"{name} on {self.endpoint}: response is nil", endpoint=self.endpoint)
        return resp

    def identify(self) -> str:
        """Return the driver name reported by GetPluginInfo."""
        log.info("calling GetPluginInfo rpc to get the driver name endpoint=%s", self.endpoint)
        resp = self._call(self._get_plugin_info, proto.GetPluginInfoRequest(), "GetPluginInfo")
        if not resp.name:
            raise ProtocolError(
                f"GetPluginInfo on {self.endpoint} returned an empty driver name",
                endpoint=self.endpoint,
            )
        return resp.name

    def probe(self) -> bool:
        """
        Ask the plugin whether it is ready.
        A response without the ``ready`` field counts as ready.
        """
        log.info("calling Probe rpc to check if the node service is healthy endpoint=%s", self.endpoint)
        resp = self._call(self._probe, proto.ProbeRequest(), "Probe")
        if not resp.HasField("ready"):
            return True
        return bool(resp.ready.value)

    def get_capabilities(self) -> Set[NodeCapability]:
        resp = self._call(
            self._node_get_capabilities,
            proto.NodeGetCapabilitiesRequest(),
            "NodeGetCapabilities",
        )
        caps: Set[NodeCapability] = set()
        for entry in resp.capabilities:
            if entry.WhichOneof("type") != "rpc":
                continue
            try:
                cap = NodeCapability(entry.rpc.type)
            except ValueError:
                log.debug("skipping unknown node capability %s from %s", entry.rpc.type, self.endpoint)
                continue
            if cap is not NodeCapability.UNKNOWN:
                caps.add(cap)
        return caps

    def _supports(self, capability: NodeCapability) -> bool:
        log.info(
            "calling NodeGetCapabilities rpc to determine if the node service supports capability=%s",
            capability.name,
        )
        return capability in self.get_capabilities()

    def supports_stage_unstage(self) -> bool:
        return self._supports(NodeCapability.STAGE_UNSTAGE_VOLUME)

    def supports_volume_condition(self) -> bool:
        return self._supports(NodeCapability.VOLUME_CONDITION)


def open_driver_client(endpoint: str, *, timeout: float = 10.0) -> GrpcDriverClient:
    return GrpcDriverClient(endpoint, timeout=timeout)
