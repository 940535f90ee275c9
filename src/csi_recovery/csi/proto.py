# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/csi/proto.py
"""
Message classes for the slice of the CSI v1 API this project speaks.

Only the Identity (GetPluginInfo, Probe) and Node (NodeGetCapabilities)
messages are declared. Field numbers and types match
container-storage-interface/spec csi.proto, so the classes are wire-compatible
with any CSI driver. Fields we never read (manifest, etc.) are left out and
survive as unknown fields.
"""
from __future__ import annotations

from enum import IntEnum

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, wrappers_pb2

PACKAGE = "csi.v1"

IDENTITY_SERVICE = f"{PACKAGE}.Identity"
NODE_SERVICE = f"{PACKAGE}.Node"

_F = descriptor_pb2.FieldDescriptorProto


class NodeCapability(IntEnum):
    """NodeServiceCapability.RPC.Type values."""

    UNKNOWN = 0
    STAGE_UNSTAGE_VOLUME = 1
    GET_VOLUME_STATS = 2
    EXPAND_VOLUME = 3
    VOLUME_CONDITION = 4
    SINGLE_NODE_MULTI_WRITER = 5
    VOLUME_MOUNT_GROUP = 6


def _field(name, number, ftype, *, type_name=None, repeated=False, oneof_index=None):
    f = _F(
        name=name,
        number=number,
        type=ftype,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name:
        f.type_name = type_name
    if oneof_index is not None:
        f.oneof_index = oneof_index
    return f


def _file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    fd = descriptor_pb2.FileDescriptorProto(
        name="csi_recovery/csi.proto",
        package=PACKAGE,
        syntax="proto3",
    )
    fd.dependency.append(wrappers_pb2.DESCRIPTOR.name)

    fd.message_type.add(name="GetPluginInfoRequest")
    fd.message_type.add(
        name="GetPluginInfoResponse",
        field=[
            _field("name", 1, _F.TYPE_STRING),
            _field("vendor_version", 2, _F.TYPE_STRING),
        ],
    )

    fd.message_type.add(name="ProbeRequest")
    fd.message_type.add(
        name="ProbeResponse",
        field=[_field("ready", 1, _F.TYPE_MESSAGE, type_name=".google.protobuf.BoolValue")],
    )

    fd.message_type.add(name="NodeGetCapabilitiesRequest")

    cap = fd.message_type.add(name="NodeServiceCapability")
    rpc = cap.nested_type.add(name="RPC")
    rpc_type = rpc.enum_type.add(name="Type")
    for member in NodeCapability:
        rpc_type.value.add(name=member.name, number=member.value)
    rpc.field.append(
        _field("type", 1, _F.TYPE_ENUM, type_name=f".{PACKAGE}.NodeServiceCapability.RPC.Type")
    )
    cap.oneof_decl.add(name="type")
    cap.field.append(
        _field(
            "rpc", 1, _F.TYPE_MESSAGE,
            type_name=f".{PACKAGE}.NodeServiceCapability.RPC",
            oneof_index=0,
        )
    )

    fd.message_type.add(
        name="NodeGetCapabilitiesResponse",
        field=[
            _field(
                "capabilities", 1, _F.TYPE_MESSAGE,
                type_name=f".{PACKAGE}.NodeServiceCapability",
                repeated=True,
            )
        ],
    )
    return fd


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(wrappers_pb2.DESCRIPTOR.serialized_pb)
_pool.AddSerializedFile(_file_descriptor().SerializeToString())


def _message(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))


GetPluginInfoRequest = _message("GetPluginInfoRequest")
GetPluginInfoResponse = _message("GetPluginInfoResponse")
ProbeRequest = _message("ProbeRequest")
ProbeResponse = _message("ProbeResponse")
NodeGetCapabilitiesRequest = _message("NodeGetCapabilitiesRequest")
NodeGetCapabilitiesResponse = _message("NodeGetCapabilitiesResponse")


def method(service: str, name: str) -> str:
    """Full gRPC method path, e.g. /csi.v1.Identity/Probe."""
    return f"/{service}/{name}"
