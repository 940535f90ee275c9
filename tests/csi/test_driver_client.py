import grpc
import pytest

from csi_recovery.csi import proto
from csi_recovery.csi.client import GrpcDriverClient, grpc_target
from csi_recovery.csi.proto import NodeCapability
from csi_recovery.errors import ProtocolError


class FakeRpcError(grpc.RpcError):
    def code(self):
        return grpc.StatusCode.UNAVAILABLE

    def details(self):
        return "connect: no such file or directory"


class FakeChannel:
    """Routes unary_unary method paths to canned responses (round-tripped through the wire format)."""

    def __init__(self, responses):
        self.responses = responses
        self.closed = False
        self.requests = []

    def unary_unary(self, method, request_serializer=None, response_deserializer=None):
        def call(request, timeout=None):
            self.requests.append((method, timeout))
            resp = self.responses.get(method)
            if isinstance(resp, Exception):
                raise resp
            request_serializer(request)
            return response_deserializer(resp.SerializeToString())
        return call

    def close(self):
        self.closed = True


IDENTIFY = "/csi.v1.Identity/GetPluginInfo"
PROBE = "/csi.v1.Identity/Probe"
CAPS = "/csi.v1.Node/NodeGetCapabilities"


def _caps(*types, raw=()):
    resp = proto.NodeGetCapabilitiesResponse()
    for t in types:
        resp.capabilities.add().rpc.type = int(t)
    for value in raw:
        resp.capabilities.add().rpc.type = value
    return resp


def _client(responses, timeout=3.0):
    channel = FakeChannel(responses)
    return GrpcDriverClient("/csi/csi.sock", timeout=timeout, channel=channel), channel


@pytest.mark.parametrize("endpoint,target", [
    ("/var/lib/kubelet/plugins/x/csi.sock", "unix:///var/lib/kubelet/plugins/x/csi.sock"),
    ("unix:///csi/csi.sock", "unix:///csi/csi.sock"),
    ("unix:/csi/csi.sock", "unix:/csi/csi.sock"),
    (" /csi/csi.sock ", "unix:///csi/csi.sock"),
])
def test_grpc_target(endpoint, target):
    assert grpc_target(endpoint) == target


def test_identify_returns_driver_name_with_deadline():
    c, channel = _client({IDENTIFY: proto.GetPluginInfoResponse(name="csi.example.com", vendor_version="1.0")})
    assert c.identify() == "csi.example.com"
    assert channel.requests == [(IDENTIFY, 3.0)]


def test_identify_empty_name_is_protocol_error():
    c, _ = _client({IDENTIFY: proto.GetPluginInfoResponse()})
    with pytest.raises(ProtocolError):
        c.identify()


def test_unreachable_channel_is_protocol_error():
    c, _ = _client({IDENTIFY: FakeRpcError(), PROBE: FakeRpcError(), CAPS: FakeRpcError()})
    for call in (c.identify, c.probe, c.get_capabilities, c.supports_stage_unstage):
        with pytest.raises(ProtocolError) as ei:
            call()
        assert ei.value.endpoint == "/csi/csi.sock"
        assert isinstance(ei.value.__cause__, grpc.RpcError)


def test_probe_ready_and_not_ready():
    ready = proto.ProbeResponse()
    ready.ready.value = True
    not_ready = proto.ProbeResponse()
    not_ready.ready.value = False

    assert _client({PROBE: ready})[0].probe() is True
    assert _client({PROBE: not_ready})[0].probe() is False


def test_probe_without_ready_field_counts_as_ready():
    assert _client({PROBE: proto.ProbeResponse()})[0].probe() is True


def test_capabilities_and_predicates():
    c, _ = _client({CAPS: _caps(NodeCapability.STAGE_UNSTAGE_VOLUME, NodeCapability.GET_VOLUME_STATS)})

    assert c.get_capabilities() == {NodeCapability.STAGE_UNSTAGE_VOLUME, NodeCapability.GET_VOLUME_STATS}
    assert c.supports_stage_unstage() is True
    assert c.supports_volume_condition() is False


def test_malformed_capability_entries_are_skipped():
    resp = _caps(NodeCapability.VOLUME_CONDITION, raw=(0, 99))
    resp.capabilities.add()  # no rpc member at all
    c, _ = _client({CAPS: resp})

    assert c.get_capabilities() == {NodeCapability.VOLUME_CONDITION}
    assert c.supports_volume_condition() is True
    assert c.supports_stage_unstage() is False


def test_empty_capability_list_supports_nothing():
    c, _ = _client({CAPS: _caps()})
    assert c.supports_stage_unstage() is False
    assert c.supports_volume_condition() is False


def test_context_manager_closes_channel():
    c, channel = _client({})
    with c:
        pass
    assert channel.closed
