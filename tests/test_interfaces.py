import socket

import pytest

from mcastutils.address import Address
from mcastutils.interfaces import (
    InterfaceAddress,
    InterfaceFlag,
    InterfaceProperties,
    system_entries,
)


def _entry(name, text, **kwargs):
    addr = Address(text)
    return InterfaceAddress(name=name, family=addr.family, address=addr, **kwargs)


@pytest.fixture
def props():
    result = InterfaceProperties()
    result.refresh([
        _entry("tst1", "192.0.2.1", netmask=Address("255.255.255.0")),
        _entry("tst1", "fe80::1"),
        _entry("tst1", "2001:db8::1"),
        _entry("tst0", "fe80::2"),
        _entry("tst1", "192.0.2.99"),
    ])
    return result


def test_invalid_before_refresh():
    fresh = InterfaceProperties()
    assert fresh.is_valid() is False
    with pytest.raises(RuntimeError):
        fresh.get_ip4_if("tst0")
    with pytest.raises(RuntimeError):
        fresh.interfaces()


def test_first_ipv4_address_wins(props):
    assert props.get_ip4_if("tst1").address == Address("192.0.2.1")


def test_ipv6_addresses_in_order(props):
    addrs = [a.address for a in props.get_ip6_if("tst1")]
    assert addrs == [Address("fe80::1"), Address("2001:db8::1")]


def test_ipv6_only_interface_has_no_ipv4(props):
    assert props.get_ip4_if("tst0") is None
    assert [a.address for a in props.get_ip6_if("tst0")] == [Address("fe80::2")]


def test_unknown_interface(props):
    assert props.get_ip4_if("nope0") is None
    assert props.get_ip6_if("nope0") is None


def test_interfaces_sorted_by_name(props):
    assert list(props.interfaces()) == ["tst0", "tst1"]


def test_entries_without_usable_address_are_skipped():
    props = InterfaceProperties()
    props.refresh([
        InterfaceAddress(name="tst2", family=socket.AF_INET, address=None),
        InterfaceAddress(name="tst3", family=socket.AF_INET, address=Address("bogus")),
        InterfaceAddress(name="tst4", family=17, address=Address("192.0.2.5")),
    ])
    assert props.is_valid() is True
    assert len(props.interfaces()) == 0


def test_refresh_replaces_previous_table(props):
    props.refresh([_entry("tst5", "198.51.100.1")])
    assert list(props.interfaces()) == ["tst5"]
    assert props.get_ip4_if("tst1") is None


def test_describe_lists_addresses():
    props = InterfaceProperties()
    props.refresh([
        _entry(
            "tst0", "192.0.2.1",
            netmask=Address("255.255.255.0"),
            broadcast=Address("192.0.2.255"),
            flags=InterfaceFlag.UP | InterfaceFlag.MULTICAST,
        ),
    ])
    lines = props.describe().split("\n")
    assert lines[0] == "##-- IPv4 [count:1]--##"
    assert "\tif name(#0): tst0" in lines
    assert "\t- addr: 192.0.2.1" in lines
    assert "\t- flags:IFF_UP IFF_MULTICAST " in lines
    assert "\t- broadaddr: 192.0.2.255" in lines
    assert lines[-1] == "##-- IPv6 [count:1]--##"


def test_describe_point_to_point_shows_destination():
    props = InterfaceProperties()
    props.refresh([
        _entry(
            "tst0", "192.0.2.1",
            destination=Address("192.0.2.2"),
            flags=InterfaceFlag.POINTOPOINT,
        ),
    ])
    text = props.describe()
    assert "\t- dstaddr: 192.0.2.2" in text
    assert "broadaddr" not in text


def test_system_entries_are_inet_only():
    entries = system_entries()
    assert all(e.family in (socket.AF_INET, socket.AF_INET6) for e in entries)


def test_refresh_from_system():
    props = InterfaceProperties()
    props.refresh()
    assert props.is_valid() is True
    for entry in props.interfaces().values():
        assert entry.ip4 is None or entry.ip4.family == socket.AF_INET
        assert all(a.family == socket.AF_INET6 for a in entry.ip6)