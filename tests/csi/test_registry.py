import pytest

from csi_recovery.csi.registry import DriverRegistry
from csi_recovery.errors import ProtocolError

from fakes import FakeDriver, protocol_error


def _connector(drivers):
    by_endpoint = {d.endpoint: d for d in drivers}
    return lambda endpoint: by_endpoint[endpoint]


def test_registry_keys_clients_by_identified_name():
    a = FakeDriver("a.csi.io")
    b = FakeDriver("b.csi.io")

    with DriverRegistry.open([a.endpoint, b.endpoint], connect=_connector([a, b])) as reg:
        assert reg.names() == ["a.csi.io", "b.csi.io"]
        assert reg.get("a.csi.io") is a
        assert reg.get("b.csi.io") is b
        assert reg.get("missing") is None
        assert not a.closed

    assert a.closed and b.closed


def test_identify_failure_closes_already_opened_clients():
    good = FakeDriver("good.csi.io")
    bad = FakeDriver("bad", identify_error=protocol_error())

    with pytest.raises(ProtocolError):
        DriverRegistry.open([good.endpoint, bad.endpoint], connect=_connector([good, bad]))

    assert good.closed
    assert bad.closed


def test_connect_failure_closes_already_opened_clients():
    good = FakeDriver("good.csi.io")

    def connect(endpoint):
        if endpoint == good.endpoint:
            return good
        raise protocol_error("dial failed")

    with pytest.raises(ProtocolError):
        DriverRegistry.open([good.endpoint, "/csi/other.sock"], connect=connect)
    assert good.closed


def test_duplicate_driver_name_keeps_first_and_still_closes_both():
    first = FakeDriver("same.csi.io", endpoint="/csi/1.sock")
    second = FakeDriver("same.csi.io", endpoint="/csi/2.sock")

    reg = DriverRegistry.open([first.endpoint, second.endpoint], connect=_connector([first, second]))
    assert reg.names() == ["same.csi.io"]
    assert reg.get("same.csi.io") is first

    reg.close()
    assert first.closed and second.closed
