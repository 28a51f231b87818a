"""IPv4 and IPv6 socket addresses carrying an optional port."""

from __future__ import annotations

import ipaddress
import socket
import struct
from typing import Union

SOCKADDR_STORAGE_SIZE = 128

_ADDRESS_LENGTH = {socket.AF_INET: 4, socket.AF_INET6: 16}
_SOCKADDR_IN_SIZE = 16
_SOCKADDR_IN6_SIZE = 28

AddressValue = Union[
    None, str, int, "Address", ipaddress.IPv4Address, ipaddress.IPv6Address
]


def _check_port(port: int | str) -> int:
    value = int(port)
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"port out of range: {port!r}")
    return value


class Address:
    """An IPv4 or IPv6 address with a port, or an invalid (unspecified) address.

    Text that cannot be parsed yields an invalid address rather than an error,
    so a failed lookup can be carried around and checked with ``is_valid()``.
    Equality and ordering look at the address only, never at the port.
    """

    __slots__ = ("_family", "_raw", "_port", "_flowinfo", "_scope_id")

    def __init__(self, value: AddressValue = None, port: int | str | None = None):
        self._family = socket.AF_UNSPEC
        self._raw = b""
        self._flowinfo = 0
        self._scope_id = 0
        self._port = 0

        if isinstance(value, Address):
            self._family = value._family
            self._raw = value._raw
            self._flowinfo = value._flowinfo
            self._scope_id = value._scope_id
            self._port = value._port
        elif isinstance(value, str):
            self._parse(value)
        elif isinstance(value, ipaddress.IPv4Address):
            self._family, self._raw = socket.AF_INET, value.packed
        elif isinstance(value, ipaddress.IPv6Address):
            self._family, self._raw = socket.AF_INET6, value.packed
        elif isinstance(value, int):
            if value in _ADDRESS_LENGTH:
                self._family = socket.AddressFamily(value)
                self._raw = bytes(_ADDRESS_LENGTH[value])
            elif value != socket.AF_UNSPEC:
                raise ValueError(f"unknown address family: {value}")
        elif value is not None:
            raise TypeError(f"cannot build an address from {type(value).__name__}")

        if port is not None:
            self._port = _check_port(port)

    def _parse(self, text: str) -> None:
        family = socket.AF_INET6 if ":" in text else socket.AF_INET
        try:
            raw = socket.inet_pton(family, text)
        except (OSError, ValueError):
            return
        self._family, self._raw = family, raw

    # -- construction from other representations --------------------------

    @classmethod
    def from_packed(cls, data: bytes) -> Address:
        """Build an address from 4 or 16 raw bytes in network order; port is 0."""
        data = bytes(data)
        if len(data) == 4:
            family = socket.AF_INET
        elif len(data) == 16:
            family = socket.AF_INET6
        else:
            raise ValueError(f"packed address must be 4 or 16 bytes, got {len(data)}")
        result = cls()
        result._family, result._raw = family, data
        return result

    @classmethod
    def from_sockaddr(cls, family: int, sockaddr: tuple) -> Address:
        """Build an address from a socket-module address tuple."""
        if family not in _ADDRESS_LENGTH:
            raise ValueError(f"unknown address family: {family}")
        host, port = sockaddr[0], sockaddr[1]
        if family == socket.AF_INET6:
            host = host.split("%", 1)[0]
        try:
            raw = socket.inet_pton(family, host)
        except (OSError, ValueError) as exc:
            raise ValueError(f"invalid host in socket address: {host!r}") from exc
        result = cls(port=port)
        result._family = socket.AddressFamily(family)
        result._raw = raw
        if family == socket.AF_INET6 and len(sockaddr) >= 4:
            result._flowinfo = int(sockaddr[2])
            result._scope_id = int(sockaddr[3])
        return result

    @classmethod
    def from_sockaddr_storage(cls, data: bytes) -> Address:
        """Decode a native ``struct sockaddr_storage`` (or sockaddr_in/_in6)."""
        data = bytes(data)
        if len(data) < 2:
            raise ValueError("sockaddr data too short")
        (family,) = struct.unpack_from("=H", data, 0)
        if family == socket.AF_UNSPEC:
            return cls()
        if family == socket.AF_INET:
            if len(data) < _SOCKADDR_IN_SIZE - 8:
                raise ValueError("sockaddr_in data too short")
            (port,) = struct.unpack_from("!H", data, 2)
            result = cls(port=port)
            result._family, result._raw = socket.AF_INET, data[4:8]
            return result
        if family == socket.AF_INET6:
            if len(data) < _SOCKADDR_IN6_SIZE:
                raise ValueError("sockaddr_in6 data too short")
            port, flowinfo = struct.unpack_from("!HI", data, 2)
            (scope_id,) = struct.unpack_from("=I", data, 24)
            result = cls(port=port)
            result._family, result._raw = socket.AF_INET6, data[8:24]
            result._flowinfo, result._scope_id = flowinfo, scope_id
            return result
        raise ValueError(f"unknown address family: {family}")

    # -- properties ---------------------------------------------------------

    @property
    def family(self) -> int:
        """AF_INET, AF_INET6 or AF_UNSPEC for an invalid address."""
        return self._family

    @property
    def port(self) -> int:
        """Port in host byte order, 0 if none was set."""
        return self._port

    @property
    def packed(self) -> bytes:
        """Raw address bytes in network order; empty for an invalid address."""
        return self._raw

    def with_port(self, port: int | str) -> Address:
        """Return a copy of this address with another port."""
        return Address(self, port=_check_port(port))

    def to_sockaddr(self) -> tuple:
        """Return the tuple the socket module takes for this address."""
        if self._family == socket.AF_INET:
            return (str(self), self._port)
        if self._family == socket.AF_INET6:
            return (str(self), self._port, self._flowinfo, self._scope_id)
        raise ValueError("an invalid address has no socket address")

    def sockaddr_storage(self) -> bytes:
        """Encode as a native ``struct sockaddr_storage`` of 128 bytes."""
        head = struct.pack("=H", self._family) + struct.pack("!H", self._port)
        if self._family == socket.AF_INET:
            body = head + self._raw
        elif self._family == socket.AF_INET6:
            body = (
                head
                + struct.pack("!I", self._flowinfo)
                + self._raw
                + struct.pack("=I", self._scope_id)
            )
        else:
            body = head
        return body.ljust(SOCKADDR_STORAGE_SIZE, b"\0")

    # -- predicates ---------------------------------------------------------

    def is_valid(self) -> bool:
        return self._family != socket.AF_UNSPEC

    def is_multicast(self) -> bool:
        if self._family == socket.AF_INET:
            return self._raw[0] & 0xF0 == 0xE0
        if self._family == socket.AF_INET6:
            return self._raw[0] == 0xFF
        return False

    # -- comparison ---------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return (
            self.is_valid()
            and self._family == other._family
            and self._raw == other._raw
        )

    def __lt__(self, other: Address) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        if self.is_valid() and self._family == other._family:
            return self._raw < other._raw
        return False

    def __le__(self, other: Address) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self < other or self == other

    def __gt__(self, other: Address) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return not self < other and not self == other

    def __ge__(self, other: Address) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return not self < other

    def __hash__(self) -> int:
        return hash((int(self._family), self._raw))

    # -- text ---------------------------------------------------------------

    def __str__(self) -> str:
        if not self.is_valid():
            return ""
        return socket.inet_ntop(self._family, self._raw)

    def __repr__(self) -> str:
        if not self.is_valid():
            return "Address()"
        return f"Address({str(self)!r}, port={self._port})"