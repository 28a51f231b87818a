"""IP multicast helpers: addresses, multicast sockets and options, interface data and rp_filter."""

__version__ = "0.1.0"

__all__ = [
    "address",
    "addrops",
    "interfaces",
    "mc_options",
    "mc_socket",
    "reverse_path_filter",
]