"""Pick a routable address of this host for remote connection URLs."""

from __future__ import annotations

import ipaddress
import socket

import psutil

LOOPBACK_ADDRESS = "127.0.0.1"

_IP_FAMILIES = (socket.AF_INET, socket.AF_INET6)


def is_global_unicast(address: str) -> bool:
    """
    ``True`` for unicast addresses other than loopback, link-local,
    multicast and unspecified.  Private ranges count as global unicast.
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    return not (
        ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_unspecified
        or ip.is_reserved
    )


def interface_addresses() -> list[str]:
    """All IPv4 and IPv6 addresses of the local interfaces."""
    addresses = []
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family in _IP_FAMILIES:
                addresses.append(addr.address)
    return addresses


def first_global_address(addresses: list[str] | None = None) -> str:
    """
    Return the first global unicast address, or loopback if there is none.

    IPv4 addresses are preferred over IPv6.
    """
    if addresses is None:
        addresses = interface_addresses()

    candidates = [a for a in addresses if is_global_unicast(a)]
    candidates.sort(key=lambda a: ":" in a)
    if candidates:
        return candidates[0]
    return LOOPBACK_ADDRESS


def format_host(host: str) -> str:
    """Bracket IPv6 literals for use in a URL authority."""
    if ":" in host and not host.startswith("["):
        return f"[{host.split('%', 1)[0]}]"
    return host
