"""A UDP socket with the multicast membership and source-filter calls."""

from __future__ import annotations

import errno
import fcntl
import logging
import socket
import struct
from typing import Iterable

from mcastutils.address import Address
from mcastutils.mc_options import (
    FilterMode,
    family_to_level,
    pack_group_filter,
    pack_group_req,
    pack_group_source_req,
)

__all__ = [
    "McSocketError",
    "McSocket",
    "MCAST_JOIN_GROUP",
    "MCAST_BLOCK_SOURCE",
    "MCAST_UNBLOCK_SOURCE",
    "MCAST_LEAVE_GROUP",
    "MCAST_JOIN_SOURCE_GROUP",
    "MCAST_LEAVE_SOURCE_GROUP",
    "MCAST_MSFILTER",
    "IP_MULTICAST_ALL",
]

_log = logging.getLogger(__name__)

MCAST_JOIN_GROUP = getattr(socket, "MCAST_JOIN_GROUP", 42)
MCAST_BLOCK_SOURCE = getattr(socket, "MCAST_BLOCK_SOURCE", 43)
MCAST_UNBLOCK_SOURCE = getattr(socket, "MCAST_UNBLOCK_SOURCE", 44)
MCAST_LEAVE_GROUP = getattr(socket, "MCAST_LEAVE_GROUP", 45)
MCAST_JOIN_SOURCE_GROUP = getattr(socket, "MCAST_JOIN_SOURCE_GROUP", 46)
MCAST_LEAVE_SOURCE_GROUP = getattr(socket, "MCAST_LEAVE_SOURCE_GROUP", 47)
MCAST_MSFILTER = getattr(socket, "MCAST_MSFILTER", 48)
IP_MULTICAST_ALL = getattr(socket, "IP_MULTICAST_ALL", 49)

_IPV6_MULTICAST_IF = getattr(socket, "IPV6_MULTICAST_IF", 17)
_IPV6_MULTICAST_HOPS = getattr(socket, "IPV6_MULTICAST_HOPS", 18)
_IPV6_MULTICAST_LOOP = getattr(socket, "IPV6_MULTICAST_LOOP", 19)
_SIOCGIFADDR = 0x8915

_FAMILIES = (socket.AF_INET, socket.AF_INET6)


class McSocketError(OSError):
    """A multicast socket operation failed."""


class McSocket:
    """Wrapper for a datagram socket used for multicast.

    Every failing call raises :class:`McSocketError`. The socket also keeps
    the membership and source-filter state it has established, which
    :meth:`get_source_filter` reports.
    """

    def __init__(self) -> None:
        self._sock = None
        self._family: int = socket.AF_UNSPEC
        self._owned = True
        self._wrapped_fd = False
        self._filters: dict[tuple[int, Address], tuple[FilterMode, list[Address]]] = {}

    # -- creation and ownership ----------------------------------------------

    def _create(self, family: int) -> None:
        if self.is_valid():
            self.close()
        try:
            sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_IP)
        except OSError as exc:
            raise McSocketError(exc.errno, f"failed to create socket: {exc.strerror}") from exc
        _log.debug("got socket descriptor number: %d", sock.fileno())
        self._sock = sock
        self._family = family
        self._owned = True
        self._wrapped_fd = False

    def create_udp_ipv4_socket(self) -> None:
        """Create an IPv4 datagram socket, closing any previous one."""
        self._create(socket.AF_INET)

    def create_udp_ipv6_socket(self) -> None:
        """Create an IPv6 datagram socket, closing any previous one."""
        self._create(socket.AF_INET6)

    def set_own_socket(self, sock, family: int) -> None:
        """Use a socket created elsewhere; it is never closed by this object.

        ``sock`` is a socket object or a file descriptor.
        """
        if self.is_valid():
            self.close()
        if isinstance(sock, int):
            if sock < 0:
                raise McSocketError(f"wrong socket descriptor: {sock}")
        if family not in _FAMILIES:
            raise McSocketError(f"wrong address family: {family}")
        if isinstance(sock, int):
            sock = socket.socket(family, socket.SOCK_DGRAM, fileno=sock)
            self._wrapped_fd = True
        else:
            self._wrapped_fd = False
        self._sock = sock
        self._family = family
        self._owned = False

    @property
    def family(self) -> int:
        """AF_INET, AF_INET6, or AF_UNSPEC before a socket exists."""
        return self._family

    def is_valid(self) -> bool:
        return self._sock is not None

    def close(self) -> None:
        """Close the socket if this object created it, then forget it."""
        sock, self._sock = self._sock, None
        if sock is not None:
            if self._owned:
                sock.close()
            elif self._wrapped_fd:
                sock.detach()
        self._family = socket.AF_UNSPEC
        self._filters.clear()

    def __enter__(self) -> McSocket:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- helpers -------------------------------------------------------------

    def _require(self):
        if self._sock is None:
            raise McSocketError("udp socket invalid")
        return self._sock

    def _setsockopt(self, level: int, opt: int, value, what: str) -> None:
        sock = self._require()
        try:
            sock.setsockopt(level, opt, value)
        except OSError as exc:
            raise McSocketError(exc.errno, f"failed to {what}: {exc.strerror}") from exc

    def _level_for(self, what: str) -> int:
        if self._family == socket.AF_INET:
            return socket.IPPROTO_IP
        if self._family == socket.AF_INET6:
            return socket.IPPROTO_IPV6
        raise McSocketError(f"wrong address family for {what}")

    @staticmethod
    def _group_level(gaddr: Address) -> int:
        level = family_to_level(gaddr.family)
        if level < 0:
            raise McSocketError(f"wrong address family of group address: {gaddr!r}")
        return level

    # -- options -------------------------------------------------------------

    def bind_udp_socket(self, addr: Address | None, port: int) -> None:
        """Bind to ``addr`` (any address if None or invalid) and ``port``."""
        self._require()
        if self._family == socket.AF_INET:
            host = str(addr) if addr is not None and addr.is_valid() else "0.0.0.0"
            target: tuple = (host, int(port))
        elif self._family == socket.AF_INET6:
            host = str(addr) if addr is not None and addr.is_valid() else "::"
            target = (host, int(port), 0, 0)
        else:
            raise McSocketError("wrong address family")
        try:
            self._sock.bind(target)
        except OSError as exc:
            raise McSocketError(exc.errno, f"failed to bind: {exc.strerror}") from exc
        _log.debug("bound to port: %s", port)

    def set_reuse_port(self, enable: bool) -> None:
        """Allow or forbid reusing a bound address."""
        self._setsockopt(
            socket.SOL_SOCKET, socket.SO_REUSEADDR, int(bool(enable)), "set reuse address"
        )

    def set_multicast_all(self, enable: bool) -> None:
        """Set IP_MULTICAST_ALL; IPv6 has no such option and is left alone."""
        self._require()
        if self._family == socket.AF_INET6:
            _log.error("option multicast_all for IPv6 not available")
            return
        if self._family != socket.AF_INET:
            raise McSocketError("wrong address family")
        self._setsockopt(
            socket.IPPROTO_IP, IP_MULTICAST_ALL, int(bool(enable)), "set multicast_all"
        )

    def set_loop_back(self, enable: bool) -> None:
        """Enable or disable multicast loopback."""
        self._require()
        if self._family == socket.AF_INET:
            level, opt = socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP
        elif self._family == socket.AF_INET6:
            level, opt = socket.IPPROTO_IPV6, _IPV6_MULTICAST_LOOP
        else:
            raise McSocketError("wrong address family")
        self._setsockopt(level, opt, int(bool(enable)), "set loop back")

    def set_receive_timeout(self, msec: int) -> None:
        """Let receive calls give up after ``msec`` milliseconds."""
        msec = int(msec)
        timeval = struct.pack("@ll", msec // 1000, 1000 * (msec % 1000))
        self._setsockopt(socket.SOL_SOCKET, socket.SO_RCVTIMEO, timeval, "set timeout")

    def choose_if(self, if_index: int) -> None:
        """Send multicast through the interface ``if_index`` (0: any)."""
        sock = self._require()
        if self._family == socket.AF_INET:
            if if_index > 0:
                try:
                    name = socket.if_indextoname(if_index)
                except OSError as exc:
                    raise McSocketError(
                        exc.errno, f"failed to get interface name of index {if_index}"
                    ) from exc
                request = struct.pack("256s", name.encode())
                try:
                    reply = fcntl.ioctl(sock.fileno(), _SIOCGIFADDR, request)
                except OSError as exc:
                    raise McSocketError(
                        exc.errno, f"failed to get interface address of {name}"
                    ) from exc
                inaddr = reply[20:24]
            else:
                inaddr = bytes(4)
            self._setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, inaddr, "choose if")
        elif self._family == socket.AF_INET6:
            self._setsockopt(
                socket.IPPROTO_IPV6, _IPV6_MULTICAST_IF, struct.pack("=I", if_index), "choose if"
            )
        else:
            raise McSocketError("wrong address family")

    def set_ttl(self, ttl: int) -> None:
        """Set the multicast TTL (hop limit for IPv6)."""
        self._require()
        if self._family == socket.AF_INET:
            level, opt = socket.IPPROTO_IP, socket.IP_MULTICAST_TTL
        elif self._family == socket.AF_INET6:
            level, opt = socket.IPPROTO_IPV6, _IPV6_MULTICAST_HOPS
        else:
            raise McSocketError("wrong address family")
        self._setsockopt(level, opt, int(ttl), f"set ttl {ttl}")

    # -- data ----------------------------------------------------------------

    def send_packet(self, addr: Address, data: bytes | str) -> None:
        """Send ``data`` to the address and port held by ``addr``."""
        sock = self._require()
        payload = data.encode() if isinstance(data, str) else bytes(data)
        try:
            sock.sendto(payload, addr.to_sockaddr())
        except ValueError as exc:
            raise McSocketError(f"failed to send: {exc}") from exc
        except OSError as exc:
            raise McSocketError(exc.errno, f"failed to send: {exc.strerror}") from exc

    def receive_packet(self, size: int) -> bytes:
        """Receive one datagram of at most ``size`` bytes; b"" on timeout."""
        sock = self._require()
        try:
            return sock.recv(size)
        except (BlockingIOError, socket.timeout):
            return b""
        except OSError as exc:
            if exc.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                return b""
            raise McSocketError(exc.errno, f"failed to receive: {exc.strerror}") from exc

    # -- group membership ----------------------------------------------------

    def _group_op(self, gaddr: Address, if_index: int, opt: int, what: str) -> None:
        self._require()
        self._setsockopt(self._group_level(gaddr), opt, pack_group_req(gaddr, if_index), what)

    def _source_op(
        self, gaddr: Address, saddr: Address, if_index: int, opt: int, what: str
    ) -> None:
        self._require()
        self._setsockopt(
            self._group_level(gaddr), opt, pack_group_source_req(gaddr, saddr, if_index), what
        )

    def join_group(self, gaddr: Address, if_index: int) -> None:
        """Join ``gaddr`` on interface ``if_index`` in exclude mode."""
        self._group_op(gaddr, if_index, MCAST_JOIN_GROUP, "join group")
        self._filters[(if_index, gaddr)] = (FilterMode.EXCLUDE, [])

    def leave_group(self, gaddr: Address, if_index: int) -> None:
        """Leave ``gaddr`` on interface ``if_index``."""
        self._group_op(gaddr, if_index, MCAST_LEAVE_GROUP, "leave group")
        self._filters.pop((if_index, gaddr), None)

    def block_source(self, gaddr: Address, saddr: Address, if_index: int) -> None:
        """Block ``saddr`` for a group joined in exclude mode (RFC 3678)."""
        self._source_op(gaddr, saddr, if_index, MCAST_BLOCK_SOURCE, "block source")
        entry = self._filters.get((if_index, gaddr))
        if entry is not None and saddr not in entry[1]:
            entry[1].append(saddr)

    def unblock_source(self, gaddr: Address, saddr: Address, if_index: int) -> None:
        """Unblock a previously blocked source (RFC 3678)."""
        self._source_op(gaddr, saddr, if_index, MCAST_UNBLOCK_SOURCE, "unblock source")
        entry = self._filters.get((if_index, gaddr))
        if entry is not None and saddr in entry[1]:
            entry[1].remove(saddr)

    def join_source_group(self, gaddr: Address, saddr: Address, if_index: int) -> None:
        """Receive ``gaddr`` from ``saddr`` in include mode (RFC 3678)."""
        self._source_op(gaddr, saddr, if_index, MCAST_JOIN_SOURCE_GROUP, "join source group")
        mode, sources = self._filters.setdefault((if_index, gaddr), (FilterMode.INCLUDE, []))
        if saddr not in sources:
            sources.append(saddr)

    def leave_source_group(self, gaddr: Address, saddr: Address, if_index: int) -> None:
        """Stop receiving ``gaddr`` from ``saddr`` (RFC 3678)."""
        self._source_op(gaddr, saddr, if_index, MCAST_LEAVE_SOURCE_GROUP, "leave source group")
        key = (if_index, gaddr)
        entry = self._filters.get(key)
        if entry is not None and saddr in entry[1]:
            entry[1].remove(saddr)
            if entry[0] == FilterMode.INCLUDE and not entry[1]:
                del self._filters[key]

    # -- full-state source filter --------------------------------------------

    def set_source_filter(
        self,
        if_index: int,
        gaddr: Address,
        filter_mode: int,
        src_list: Iterable[Address],
    ) -> None:
        """Replace the filter of a group with an include or exclude list."""
        self._require()
        sources = list(src_list)
        mode = FilterMode(int(filter_mode))
        payload = pack_group_filter(if_index, gaddr, mode, sources)
        self._setsockopt(self._group_level(gaddr), MCAST_MSFILTER, payload, "set source filter")
        key = (if_index, gaddr)
        if mode == FilterMode.INCLUDE and not sources:
            self._filters.pop(key, None)
        else:
            self._filters[key] = (mode, sources)

    def get_source_filter(self, if_index: int, gaddr: Address) -> tuple[FilterMode, list[Address]]:
        """Return (mode, sources) of a membership established by this socket."""
        self._require()
        entry = self._filters.get((if_index, gaddr))
        if entry is None:
            raise McSocketError(
                errno.EADDRNOTAVAIL,
                f"no membership of {gaddr} on interface index {if_index}",
            )
        return entry[0], list(entry[1])

    def __repr__(self) -> str:
        state = "valid" if self.is_valid() else "invalid"
        return f"McSocket(family={int(self._family)}, {state})"