import errno
import socket
import struct

import pytest

from mcastutils import mc_socket as mcs
from mcastutils.address import Address
from mcastutils.mc_options import (
    FilterMode,
    pack_group_filter,
    pack_group_req,
    pack_group_source_req,
)
from mcastutils.mc_socket import McSocket, McSocketError

GROUP = Address("239.99.99.99")
SRC_A = Address("141.22.0.1")
SRC_B = Address("141.22.0.2")


class FakeSocket:
    def __init__(self, fail_errno=None):
        self.calls = []
        self.closed = False
        self.fail_errno = fail_errno

    def setsockopt(self, level, opt, value):
        if self.fail_errno is not None:
            raise OSError(self.fail_errno, "fake failure")
        self.calls.append((level, opt, value))

    def fileno(self):
        return 99

    def close(self):
        self.closed = True


def fake_mc(family=socket.AF_INET, fail_errno=None):
    fake = FakeSocket(fail_errno)
    m = McSocket()
    m.set_own_socket(fake, family)
    return m, fake


def test_new_socket_is_invalid():
    m = McSocket()
    assert not m.is_valid()
    assert m.family == socket.AF_UNSPEC
    with pytest.raises(McSocketError):
        m.set_ttl(1)
    with pytest.raises(McSocketError):
        m.send_packet(Address("127.0.0.1", 1), b"x")


def test_create_and_close():
    with McSocket() as m:
        m.create_udp_ipv4_socket()
        assert m.is_valid()
        assert m.family == socket.AF_INET
    assert not m.is_valid()


def test_send_and_receive_loopback():
    with McSocket() as receiver, McSocket() as sender:
        receiver.create_udp_ipv4_socket()
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.bind(("127.0.0.1", 0))
            port = probe.getsockname()[1]
        receiver.set_reuse_port(True)
        receiver.bind_udp_socket(Address("127.0.0.1"), port)
        receiver.set_receive_timeout(2000)
        sender.create_udp_ipv4_socket()
        sender.send_packet(Address("127.0.0.1", port), "Hallo")
        assert receiver.receive_packet(100) == b"Hallo"


def test_receive_timeout_returns_empty():
    with McSocket() as m:
        m.create_udp_ipv4_socket()
        m.bind_udp_socket(Address("127.0.0.1"), 0)
        m.set_receive_timeout(50)
        assert m.receive_packet(100) == b""


def test_options_reach_foreign_socket():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as raw:
        m = McSocket()
        m.set_own_socket(raw, socket.AF_INET)
        m.set_ttl(5)
        m.set_loop_back(False)
        m.set_reuse_port(True)
        assert raw.getsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL) == 5
        assert raw.getsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP) == 0
        assert raw.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        m.close()
        assert raw.fileno() >= 0


def test_close_leaves_foreign_socket_open():
    m, fake = fake_mc()
    m.close()
    assert fake.closed is False
    assert not m.is_valid()


def test_set_own_socket_rejects_bad_input():
    m = McSocket()
    with pytest.raises(McSocketError):
        m.set_own_socket(-1, socket.AF_INET)
    with pytest.raises(McSocketError):
        m.set_own_socket(FakeSocket(), socket.AF_UNIX)
    assert not m.is_valid()


def test_join_group_sends_group_req():
    m, fake = fake_mc()
    m.join_group(GROUP, 3)
    assert fake.calls == [(socket.IPPROTO_IP, mcs.MCAST_JOIN_GROUP, pack_group_req(GROUP, 3))]
    assert m.get_source_filter(3, GROUP) == (FilterMode.EXCLUDE, [])


def test_ipv6_group_uses_ipv6_level():
    m, fake = fake_mc(socket.AF_INET6)
    g6 = Address("FF02::99:99:99:99")
    m.join_group(g6, 2)
    assert fake.calls[0][0] == socket.IPPROTO_IPV6


def test_block_and_unblock_track_sources():
    m, fake = fake_mc()
    m.join_group(GROUP, 1)
    m.block_source(GROUP, SRC_A, 1)
    assert fake.calls[-1] == (
        socket.IPPROTO_IP,
        mcs.MCAST_BLOCK_SOURCE,
        pack_group_source_req(GROUP, SRC_A, 1),
    )
    assert m.get_source_filter(1, GROUP) == (FilterMode.EXCLUDE, [SRC_A])
    m.unblock_source(GROUP, SRC_A, 1)
    assert m.get_source_filter(1, GROUP) == (FilterMode.EXCLUDE, [])


def test_source_group_join_and_leave():
    m, fake = fake_mc()
    m.join_source_group(GROUP, SRC_A, 1)
    assert fake.calls[-1][1] == mcs.MCAST_JOIN_SOURCE_GROUP
    assert m.get_source_filter(1, GROUP) == (FilterMode.INCLUDE, [SRC_A])
    m.leave_source_group(GROUP, SRC_A, 1)
    with pytest.raises(McSocketError) as info:
        m.get_source_filter(1, GROUP)
    assert info.value.errno == errno.EADDRNOTAVAIL


def test_leave_group_forgets_membership():
    m, _ = fake_mc()
    m.join_group(GROUP, 1)
    m.leave_group(GROUP, 1)
    with pytest.raises(McSocketError):
        m.get_source_filter(1, GROUP)


def test_set_source_filter_full_state():
    m, fake = fake_mc()
    m.join_group(GROUP, 4)
    m.set_source_filter(4, GROUP, FilterMode.INCLUDE, [SRC_A, SRC_B])
    assert fake.calls[-1] == (
        socket.IPPROTO_IP,
        mcs.MCAST_MSFILTER,
        pack_group_filter(4, GROUP, FilterMode.INCLUDE, [SRC_A, SRC_B]),
    )
    assert m.get_source_filter(4, GROUP) == (FilterMode.INCLUDE, [SRC_A, SRC_B])
    m.set_source_filter(4, GROUP, FilterMode.EXCLUDE, [SRC_B])
    assert m.get_source_filter(4, GROUP) == (FilterMode.EXCLUDE, [SRC_B])


def test_failure_carries_errno_and_keeps_state():
    m, _ = fake_mc(fail_errno=errno.EADDRINUSE)
    with pytest.raises(McSocketError) as info:
        m.join_group(GROUP, 1)
    assert info.value.errno == errno.EADDRINUSE
    with pytest.raises(McSocketError):
        m.get_source_filter(1, GROUP)


def test_invalid_group_address_rejected():
    m, fake = fake_mc()
    with pytest.raises(McSocketError):
        m.join_group(Address("not an address"), 1)
    assert fake.calls == []


def test_multicast_all_ipv6_is_skipped():
    m, fake = fake_mc(socket.AF_INET6)
    m.set_multicast_all(True)
    assert fake.calls == []


def test_multicast_all_ipv4():
    m, fake = fake_mc()
    m.set_multicast_all(False)
    assert fake.calls == [(socket.IPPROTO_IP, mcs.IP_MULTICAST_ALL, 0)]


def test_choose_if_payloads():
    m6, fake6 = fake_mc(socket.AF_INET6)
    m6.choose_if(3)
    assert fake6.calls[0][2] == struct.pack("=I", 3)
    m4, fake4 = fake_mc()
    m4.choose_if(0)
    assert fake4.calls == [(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, bytes(4))]


def test_receive_timeout_payload():
    m, fake = fake_mc()
    m.set_receive_timeout(1500)
    assert fake.calls[0][2] == struct.pack("@ll", 1, 500000)