"""Addresses of the local network interfaces, grouped by interface name."""

from __future__ import annotations

import enum
import logging
import socket
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

import psutil

from mcastutils.address import Address

__all__ = [
    "InterfaceFlag",
    "InterfaceAddress",
    "InterfaceEntry",
    "InterfaceProperties",
    "system_entries",
]

_log = logging.getLogger(__name__)


class InterfaceFlag(enum.IntFlag):
    """Interface flags as the kernel numbers them."""

    UP = 0x1
    BROADCAST = 0x2
    LOOPBACK = 0x8
    POINTOPOINT = 0x10
    RUNNING = 0x40
    PROMISC = 0x100
    ALLMULTI = 0x200
    MULTICAST = 0x1000


_FLAG_ORDER = (
    InterfaceFlag.UP,
    InterfaceFlag.RUNNING,
    InterfaceFlag.LOOPBACK,
    InterfaceFlag.BROADCAST,
    InterfaceFlag.ALLMULTI,
    InterfaceFlag.MULTICAST,
    InterfaceFlag.PROMISC,
    InterfaceFlag.POINTOPOINT,
)

_FLAG_NAMES = {flag.name.lower(): flag for flag in InterfaceFlag}


@dataclass(frozen=True)
class InterfaceAddress:
    """One address configured on an interface."""

    name: str
    family: int
    address: Address | None
    netmask: Address | None = None
    broadcast: Address | None = None
    destination: Address | None = None
    flags: InterfaceFlag = InterfaceFlag(0)


@dataclass
class InterfaceEntry:
    """The IPv4 address and the IPv6 addresses of one interface."""

    ip4: InterfaceAddress | None = None
    ip6: list[InterfaceAddress] = field(default_factory=list)


class InterfaceProperties:
    """Interface addresses organised by name; call :meth:`refresh` first."""

    def __init__(self) -> None:
        self._map: dict[str, InterfaceEntry] | None = None

    def refresh(self, entries: Iterable[InterfaceAddress] | None = None) -> None:
        """Rebuild the table from ``entries``, or from the system if None.

        An interface keeps the first IPv4 address it is given; more are
        ignored with a warning.
        """
        self._map = None
        if entries is None:
            entries = system_entries()
        table: dict[str, InterfaceEntry] = {}
        for entry in entries:
            if entry.address is None or not entry.address.is_valid():
                continue
            if entry.family == socket.AF_INET:
                current = table.get(entry.name)
                if current is None:
                    table[entry.name] = InterfaceEntry(ip4=entry)
                elif current.ip4 is not None:
                    _log.warning(
                        "more than one ipv4 address for one interface configured! "
                        "used: %s; not used: %s;",
                        current.ip4.address, entry.address,
                    )
                else:
                    current.ip4 = entry
            elif entry.family == socket.AF_INET6:
                table.setdefault(entry.name, InterfaceEntry()).ip6.append(entry)
        self._map = dict(sorted(table.items()))

    def is_valid(self) -> bool:
        return self._map is not None

    def _require(self) -> dict[str, InterfaceEntry]:
        if self._map is None:
            raise RuntimeError("interface data invalid: refresh first")
        return self._map

    def interfaces(self) -> Mapping[str, InterfaceEntry]:
        """All interfaces by name, in name order."""
        return MappingProxyType(self._require())

    def get_ip4_if(self, if_name: str) -> InterfaceAddress | None:
        """The IPv4 address of ``if_name``, or None."""
        entry = self._require().get(if_name)
        return None if entry is None else entry.ip4

    def get_ip6_if(self, if_name: str) -> list[InterfaceAddress] | None:
        """The IPv6 addresses of ``if_name``, or None for an unknown name."""
        entry = self._require().get(if_name)
        return None if entry is None else list(entry.ip6)

    def describe(self) -> str:
        """A readable listing of every IPv4 and IPv6 interface address."""
        table = self._require()
        lines = [f"##-- IPv4 [count:{len(table)}]--##"]
        for name, entry in table.items():
            if entry.ip4 is None:
                _log.debug("no ipv4 address on interface: %s", name)
                continue
            lines.extend(_describe_address(entry.ip4))
        lines.append(f"##-- IPv6 [count:{len(table)}]--##")
        for entry in table.values():
            for addr in entry.ip6:
                lines.extend(_describe_address(addr))
        return "\n".join(lines)


def _text(addr: Address | None) -> str:
    return "" if addr is None else str(addr)


def _if_index(name: str) -> int:
    try:
        return socket.if_nametoindex(name)
    except OSError:
        return 0


def _describe_address(addr: InterfaceAddress) -> list[str]:
    flags = "".join(f"IFF_{flag.name} " for flag in _FLAG_ORDER if addr.flags & flag)
    lines = [
        f"\tif name(#{_if_index(addr.name)}): {addr.name}",
        f"\t- addr: {_text(addr.address)}",
        f"\t- netmask: {_text(addr.netmask)}",
        f"\t- flags:{flags}",
    ]
    if addr.flags & InterfaceFlag.POINTOPOINT:
        if addr.destination is not None:
            lines.append(f"\t- dstaddr: {addr.destination}")
    elif addr.family == socket.AF_INET:
        lines.append(f"\t- broadaddr: {_text(addr.broadcast)}")
    return lines


def _parse(text: str | None) -> Address | None:
    if not text:
        return None
    return Address(text.split("%", 1)[0])


def _flags_of(stats) -> InterfaceFlag:
    flags = InterfaceFlag(0)
    if stats is None:
        return flags
    for word in getattr(stats, "flags", "").split(","):
        flags |= _FLAG_NAMES.get(word.strip(), InterfaceFlag(0))
    if stats.isup:
        flags |= InterfaceFlag.UP
    return flags


def system_entries() -> list[InterfaceAddress]:
    """The IPv4 and IPv6 addresses configured on this host."""
    stats = psutil.net_if_stats()
    entries = []
    for name, nics in psutil.net_if_addrs().items():
        flags = _flags_of(stats.get(name))
        for nic in nics:
            if nic.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            entries.append(
                InterfaceAddress(
                    name=name,
                    family=int(nic.family),
                    address=_parse(nic.address),
                    netmask=_parse(nic.netmask),
                    broadcast=_parse(nic.broadcast),
                    destination=_parse(nic.ptp),
                    flags=flags,
                )
            )
    return entries