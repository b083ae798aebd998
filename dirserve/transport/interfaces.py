"""Discovery of the host's non-loopback IPv4 addresses."""

import ipaddress
import socket

import psutil

from dirserve.domain.correlation_id import get_logger

INTERFACE_LOGGER = get_logger("transport.interfaces")


def _is_up(stats: dict, interface: str) -> bool:
    # Interfaces psutil has no stats for are kept.
    interface_stats = stats.get(interface)
    return interface_stats is None or interface_stats.isup


def non_loopback_ipv4_addresses() -> list[str]:
    """Return the IPv4 address of every up interface, loopback excluded.

    Addresses are de-duplicated and keep the order psutil reports them in.
    """
    stats = psutil.net_if_stats()
    addresses: list[str] = []
    for interface, interface_addresses in psutil.net_if_addrs().items():
        if not _is_up(stats, interface):
            continue
        for entry in interface_addresses:
            if entry.family != socket.AF_INET:
                continue
            address = ipaddress.ip_address(entry.address)
            if address.is_loopback or address.is_unspecified:
                continue
            if entry.address not in addresses:
                addresses.append(entry.address)
    INTERFACE_LOGGER.debug(
        "Enumerated network interfaces",
        extra={"event": "interfaces_enumerated", "entries": len(addresses)},
    )
    return addresses
