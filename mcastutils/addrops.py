"""Arithmetic on addresses: stepping, prefix masks and broadcast addresses."""

from __future__ import annotations

import socket

from mcastutils.address import Address

__all__ = [
    "next_address",
    "previous_address",
    "mask",
    "mask_ipv4",
    "broadcast_addr",
]


def _value(addr: Address) -> int:
    if not addr.is_valid():
        raise ValueError("unknown ip version: the address is invalid")
    return int.from_bytes(addr.packed, "big")


def _width(addr: Address) -> int:
    return len(addr.packed) * 8


def _rebuild(addr: Address, value: int) -> Address:
    """Return a copy of ``addr`` whose address part is ``value``, port kept."""
    size = len(addr.packed)
    raw = (value % (1 << (size * 8))).to_bytes(size, "big")
    host = socket.inet_ntop(addr.family, raw)
    sockaddr = addr.to_sockaddr()
    return Address.from_sockaddr(addr.family, (host,) + tuple(sockaddr[1:]))


def _prefix_length(addr: Address, suffix: int) -> int:
    suffix = int(suffix)
    if suffix < 0:
        raise ValueError(f"prefix length must not be negative: {suffix}")
    return min(suffix, _width(addr))


def next_address(addr: Address) -> Address:
    """Return the address one above ``addr``, wrapping around at the top."""
    return _rebuild(addr, _value(addr) + 1)


def previous_address(addr: Address) -> Address:
    """Return the address one below ``addr``, wrapping around at zero."""
    return _rebuild(addr, _value(addr) - 1)


def mask(addr: Address, suffix: int) -> Address:
    """Keep the leading ``suffix`` bits of ``addr`` and clear the rest."""
    value = _value(addr)
    width = _width(addr)
    host_bits = width - _prefix_length(addr, suffix)
    network_mask = ((1 << width) - 1) ^ ((1 << host_bits) - 1)
    return _rebuild(addr, value & network_mask)


def mask_ipv4(addr: Address, subnet_mask: Address) -> Address:
    """AND an IPv4 address with an IPv4 subnet mask."""
    if addr.family != socket.AF_INET or subnet_mask.family != socket.AF_INET:
        raise ValueError("incompatible ip versions: both addresses must be IPv4")
    return _rebuild(addr, _value(addr) & _value(subnet_mask))


def broadcast_addr(addr: Address, suffix: int) -> Address:
    """Set every bit after the leading ``suffix`` bits of ``addr``."""
    value = _value(addr)
    host_bits = _width(addr) - _prefix_length(addr, suffix)
    return _rebuild(addr, value | ((1 << host_bits) - 1))