# mcastutils

This package has helpers for writing IP multicast tools on Linux. It handles
IPv4 and IPv6 alike.

## Modules

### `mcastutils.address`

`Address` is one value type for IPv4 and IPv6 addresses, with an optional
port.

- **Building an address.** You can build one from:
  - text
  - an `ipaddress` object
  - another `Address`
  - a bare address family, which gives the all-zero address of that family

- **Text that does not parse.** It gives an invalid address, and no exception
  is raised. Check for this with `is_valid()`. An invalid address has the
  family `AF_UNSPEC`.

- **Comparing.** Equality and ordering look at the address only, never at the
  port. An invalid address is equal to nothing. Two addresses of different
  families are never less than one another.

- **Other members:**
  - `is_multicast()`
  - `with_port()`
  - `packed`
  - `to_sockaddr()`, which gives the tuple the `socket` module takes
  - `sockaddr_storage()`, which gives a 128-byte native `sockaddr_storage`

- **Converting back.** `from_packed`, `from_sockaddr` and
  `from_sockaddr_storage` each build an `Address`.

### `mcastutils.addrops`

These functions do arithmetic on addresses. Each returns a new `Address` and
keeps the port.

- `next_address` and `previous_address` wrap around at the ends of the
  address space.
- `mask(addr, suffix)` keeps the leading `suffix` bits.
- `broadcast_addr(addr, suffix)` sets every bit after the leading `suffix`
  bits.
- `mask_ipv4(addr, subnet_mask)` applies an IPv4 subnet mask.

An invalid address raises `ValueError`. So does a mix of families in
`mask_ipv4`.

### `mcastutils.mc_options`

This module holds constants for well-known multicast addresses. It has:

- `resolve_well_known_address()`, which returns the symbolic name of such an
  address, or `""`.
- `family_to_level()`, which returns the socket option level for an address
  family, or `-1` if the family is unknown.
- `FilterMode`, with the values `INCLUDE` and `EXCLUDE`.

It also builds the native records for the protocol-independent multicast
socket options of RFC 3678:

- `pack_group_req`
- `pack_group_source_req`
- `pack_group_filter`
- `unpack_group_filter`, which reads a record back

### `mcastutils.mc_socket`

`McSocket` is a UDP socket for multicast, and it is also a context manager. A
failure raises `McSocketError`, which is a subclass of `OSError`.

- **Creating the socket.**
  - `create_udp_ipv4_socket()` and `create_udp_ipv6_socket()` create one.
  - `set_own_socket(sock, family)` adopts a socket created elsewhere. Such a
    socket is never closed by the `McSocket`.

- **Socket options.**
  - `bind_udp_socket`
  - `set_reuse_port`
  - `set_multicast_all` (IPv4 only; on IPv6 it logs an error and does nothing)
  - `set_loop_back`
  - `set_ttl`
  - `set_receive_timeout`
  - `choose_if`

- **Data.** `send_packet` sends data. `receive_packet(size)` receives it and
  returns `b""` on a timeout.

- **Group membership and source filters.**
  - `join_group` and `leave_group`
  - `block_source` and `unblock_source`
  - `join_source_group` and `leave_source_group`
  - `set_source_filter`, which sets a full-state filter

- **Reading a filter back.** `get_source_filter(if_index, gaddr)` returns the
  mode and the sources. It reports only the filter state that this socket
  object set itself. It raises `McSocketError` if there is no such membership.

### `mcastutils.reverse_path_filter`

`ReversePathFilter` switches off `rp_filter` for an interface. By default it
does this under `/proc/sys/net/ipv4/conf/`, and another base directory can be
given.

- `reset(if_name)` turns the filter off. The first interface reset also resets
  the `all` pseudo interface.
- `restore(if_name)` turns the filter of one interface back on.
- `restore_all()`, or leaving a `with` block, turns back on every filter this
  object switched off.
- `disabled_interfaces` lists the affected interfaces.
- `str()` gives the same list as a readable report.

### `mcastutils.interfaces`

`InterfaceProperties.refresh()` groups interface addresses by interface name.
Each interface gets one IPv4 address, which is the first one seen, and a list
of IPv6 addresses. The addresses can come from either of these sources:

- a list of `InterfaceAddress` records
- the running system, when nothing is passed; this reads them through
  `system_entries()` using psutil

The grouped data is read through these members:

- `interfaces()`
- `get_ip4_if()`
- `get_ip6_if()`
- `describe()`, which prints a listing

Calling any of them before `refresh()` raises `RuntimeError`.

## Install

```
pip install .
```

## Example

```python
from mcastutils.address import Address
from mcastutils.addrops import mask, next_address
from mcastutils.mc_socket import McSocket

group = Address("239.99.99.99")
assert group.is_multicast()
assert str(mask(Address("123.123.123.123"), 24)) == "123.123.123.0"
assert next_address(Address("239.0.255.255")) == Address("239.1.0.0")

with McSocket() as sock:
    sock.create_udp_ipv4_socket()
    sock.set_ttl(1)
    sock.send_packet(group.with_port(9845), b"hello")
```

Setting group memberships usually needs elevated privileges. So does changing
`rp_filter`.

## What it does not do

This is a library only. It has no command-line program. It does not build or
parse IGMP or MLD messages. It does not read configuration files. It does not
set up multicast routes in the kernel.

## Tests

```
pip install .[test]
pytest
```