"""Well-known multicast addresses and the socket-option records for group membership.

The records built here are the native ``struct group_req``,
``struct group_source_req`` and ``struct group_filter`` layouts of the
protocol-independent multicast API (RFC 3678), ready for ``setsockopt``.
"""

from __future__ import annotations

import enum
import socket
import struct
from typing import Iterable

from mcastutils.address import SOCKADDR_STORAGE_SIZE, Address

__all__ = [
    "FilterMode",
    "resolve_well_known_address",
    "family_to_level",
    "pack_group_req",
    "pack_group_source_req",
    "pack_group_filter",
    "unpack_group_filter",
    "IPV4_ALL_HOST_ADDR",
    "IPV4_ALL_IGMP_ROUTERS_ADDR",
    "IPV4_ALL_SPF_ROUTER_ADDR",
    "IPV4_ALL_D_ROUTERS_ADDR",
    "IPV4_RIPV2_ADDR",
    "IPV4_EIGRP_ADDR",
    "IPV4_PIMV2_ADDR",
    "IPV4_VRR_ADDR",
    "IPV4_IS_IS_OVER_IP_19_ADDR",
    "IPV4_IS_IS_OVER_IP_20_ADDR",
    "IPV4_IS_IS_OVER_IP_21_ADDR",
    "IPV4_IGMPV3_ADDR",
    "IPV4_HOT_STANDBY_ROUTERV2_ADDR",
    "IPV4_MCAST_DNS_ADDR",
    "IPV4_LINK_LOCAL_MCAST_NAME_RES_ADDR",
    "IPV4_NTP_ADDR",
    "IPV4_CISCO_AUTO_RP_ANNOUNCE_ADDR",
    "IPV4_CISCO_AUTO_RP_DISCOVERY_ADDR",
    "IPV4_H_323_GATEKEEPER_DISC_ADDR",
    "IPV6_ALL_NODES_ADDR",
    "IPV6_ALL_NODE_LOCAL_ROUTER",
    "IPV6_ALL_LINK_LOCAL_ROUTER",
    "IPV6_ALL_SITE_LOCAL_ROUTER",
    "IPV6_ALL_MLDV2_CAPABLE_ROUTERS",
    "IPV6_ALL_PIM_ROUTERS",
]

# IPv4 addresses reserved for multicasting.
IPV4_ALL_HOST_ADDR = "224.0.0.1"
IPV4_ALL_IGMP_ROUTERS_ADDR = "224.0.0.2"
IPV4_ALL_SPF_ROUTER_ADDR = "224.0.0.5"
IPV4_ALL_D_ROUTERS_ADDR = "224.0.0.6"
IPV4_RIPV2_ADDR = "224.0.0.9"
IPV4_EIGRP_ADDR = "224.0.0.10"
IPV4_PIMV2_ADDR = "224.0.0.13"
IPV4_VRR_ADDR = "224.0.0.18"
IPV4_IS_IS_OVER_IP_19_ADDR = "224.0.0.19"
IPV4_IS_IS_OVER_IP_20_ADDR = "224.0.0.20"
IPV4_IS_IS_OVER_IP_21_ADDR = "224.0.0.21"
IPV4_IGMPV3_ADDR = "224.0.0.22"
IPV4_HOT_STANDBY_ROUTERV2_ADDR = "224.0.0.102"
IPV4_MCAST_DNS_ADDR = "224.0.0.251"
IPV4_LINK_LOCAL_MCAST_NAME_RES_ADDR = "224.0.0.252"
IPV4_NTP_ADDR = "224.0.1.1"
IPV4_CISCO_AUTO_RP_ANNOUNCE_ADDR = "224.0.1.39"
IPV4_CISCO_AUTO_RP_DISCOVERY_ADDR = "224.0.1.40"
IPV4_H_323_GATEKEEPER_DISC_ADDR = "224.0.1.41"

# IPv6 addresses reserved for multicasting.
IPV6_ALL_NODES_ADDR = "ff02::1"
IPV6_ALL_NODE_LOCAL_ROUTER = "ff01::2"
IPV6_ALL_LINK_LOCAL_ROUTER = "ff02::2"
IPV6_ALL_SITE_LOCAL_ROUTER = "ff05::2"
IPV6_ALL_MLDV2_CAPABLE_ROUTERS = "ff02::16"
IPV6_ALL_PIM_ROUTERS = "ff02::d"

# Only the first nine entries take part in the lookup; the PIM routers entry
# is listed but never matched.
_WELL_KNOWN = (
    (IPV4_IGMPV3_ADDR, "IPV4_IGMPV3_ADDR"),
    (IPV4_ALL_HOST_ADDR, "IPV4_ALL_HOST_ADDR"),
    (IPV4_ALL_IGMP_ROUTERS_ADDR, "IPV4_ALL_ROUTERS_ADDR"),
    (IPV4_PIMV2_ADDR, "IPV4_PIMv2_ADDR"),
    (IPV4_MCAST_DNS_ADDR, "IPV4_MCAST_DNS_ADDR"),
    (IPV6_ALL_MLDV2_CAPABLE_ROUTERS, "IPV6_ALL_MLDv2_CAPABLE_ROUTERS"),
    (IPV6_ALL_NODES_ADDR, "IPV6_ALL_NODES_ADDR"),
    (IPV6_ALL_LINK_LOCAL_ROUTER, "IPV6_ALL_LINK_LOCAL_ROUTER"),
    (IPV6_ALL_SITE_LOCAL_ROUTER, "IPV6_ALL_SITE_LOCAL_ROUTER"),
    (IPV6_ALL_PIM_ROUTERS, "IPV6_ALL_PIM_ROUTERS"),
)
_RESOLVED_COUNT = 9


class FilterMode(enum.IntEnum):
    """Source filter mode of a multicast membership."""

    EXCLUDE = 0
    INCLUDE = 1


# Native layout: a uint32 interface index followed by sockaddr_storage, which
# is aligned like an unsigned long.
_STORAGE_ALIGN = struct.calcsize("@L")
_GROUP_OFFSET = struct.calcsize("@IL") - _STORAGE_ALIGN
_FMODE_OFFSET = _GROUP_OFFSET + SOCKADDR_STORAGE_SIZE
_NUMSRC_OFFSET = _FMODE_OFFSET + 4
_SLIST_OFFSET = -(-(_NUMSRC_OFFSET + 4) // _STORAGE_ALIGN) * _STORAGE_ALIGN


def _check_if_index(if_index: int) -> int:
    value = int(if_index)
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"interface index out of range: {if_index!r}")
    return value


def _head(if_index: int) -> bytes:
    return struct.pack("=I", _check_if_index(if_index)).ljust(_GROUP_OFFSET, b"\0")


def resolve_well_known_address(addr: str | Address) -> str:
    """Return the symbolic name of a well-known multicast address, or ""."""
    text = str(addr)
    for address, name in _WELL_KNOWN[:_RESOLVED_COUNT]:
        if text == address:
            return name
    return ""


def family_to_level(family: int) -> int:
    """Return the socket option level for an address family, -1 if unknown."""
    if family == socket.AF_INET:
        return socket.IPPROTO_IP
    if family == socket.AF_INET6:
        return socket.IPPROTO_IPV6
    return -1


def pack_group_req(gaddr: Address, if_index: int) -> bytes:
    """Build a native ``struct group_req`` for joining or leaving a group."""
    return _head(if_index) + gaddr.sockaddr_storage()


def pack_group_source_req(gaddr: Address, saddr: Address, if_index: int) -> bytes:
    """Build a native ``struct group_source_req`` for the source-specific calls."""
    return _head(if_index) + gaddr.sockaddr_storage() + saddr.sockaddr_storage()


def pack_group_filter(
    if_index: int,
    gaddr: Address,
    filter_mode: int,
    src_list: Iterable[Address],
) -> bytes:
    """Build a native ``struct group_filter`` holding the full source list."""
    mode = FilterMode(int(filter_mode))
    sources = [src.sockaddr_storage() for src in src_list]
    body = (_head(if_index) + gaddr.sockaddr_storage()).ljust(_FMODE_OFFSET, b"\0")
    body += struct.pack("=II", int(mode), len(sources))
    body = body.ljust(_SLIST_OFFSET, b"\0")
    return body + b"".join(sources)


def unpack_group_filter(
    data: bytes,
) -> tuple[int, Address, FilterMode | int, list[Address]]:
    """Decode a ``struct group_filter`` into (if_index, group, mode, sources).

    Only as many sources are returned as both the count field and the data
    hold. An unknown filter mode is passed through as a plain integer.
    """
    data = bytes(data)
    if len(data) < _SLIST_OFFSET:
        raise ValueError(
            f"group_filter data too short: {len(data)} < {_SLIST_OFFSET} bytes"
        )
    (if_index,) = struct.unpack_from("=I", data, 0)
    gaddr = Address.from_sockaddr_storage(data[_GROUP_OFFSET:_FMODE_OFFSET])
    raw_mode, numsrc = struct.unpack_from("=II", data, _FMODE_OFFSET)
    try:
        mode: FilterMode | int = FilterMode(raw_mode)
    except ValueError:
        mode = raw_mode
    available = (len(data) - _SLIST_OFFSET) // SOCKADDR_STORAGE_SIZE
    sources = [
        Address.from_sockaddr_storage(
            data[start : start + SOCKADDR_STORAGE_SIZE]
        )
        for start in range(
            _SLIST_OFFSET,
            _SLIST_OFFSET + min(numsrc, available) * SOCKADDR_STORAGE_SIZE,
            SOCKADDR_STORAGE_SIZE,
        )
    ]
    return if_index, gaddr, mode, sources