"""
Network Interface Enumeration

Design Decision: Broadcast Addressing
=====================================

Options Considered:
1. Limited broadcast only (255.255.255.255)
   - One send, no enumeration
   - Only leaves through the default route on many hosts
   - Silently lost on multi-homed or bridged machines

2. Assume a /24 around the "primary" IP
   - Cheap, but wrong on any other prefix length
   - Still only covers one interface

3. Directed broadcast per interface
   - One datagram per up IPv4 interface
   - Broadcast address computed from address + netmask
   - Works on multi-homed hosts

Decision: Directed broadcast per interface (psutil for enumeration)
- psutil ships wheels for every platform we care about
- The caller falls back to 255.255.255.255 if enumeration fails
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Iterator, List, Optional

import psutil

logger = logging.getLogger(__name__)

LOOPBACK_FALLBACK = "127.0.0.1"
LIMITED_BROADCAST = "255.255.255.255"


@dataclass
class InterfaceAddress:
    """One IPv4 address bound to a local interface."""
    name: str
    address: str
    netmask: Optional[str] = None
    broadcast: Optional[str] = None

    @property
    def is_loopback(self) -> bool:
        return ipaddress.IPv4Address(self.address).is_loopback

    @property
    def is_link_local(self) -> bool:
        return ipaddress.IPv4Address(self.address).is_link_local

    def broadcast_address(self) -> Optional[str]:
        """
        Directed broadcast address for this interface.

        Returns None for point-to-point style prefixes (/31, /32) where a
        broadcast address does not exist.
        """
        if self.netmask:
            network = ipaddress.IPv4Network(
                f"{self.address}/{self.netmask}", strict=False
            )
            if network.prefixlen >= 31:
                return None
            return str(network.broadcast_address)
        return self.broadcast or None


def iter_ipv4_interfaces() -> Iterator[InterfaceAddress]:
    """
    Yield the IPv4 addresses of every interface that is up.

    Raises:
        OSError: if the platform refuses to enumerate interfaces
    """
    try:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except psutil.Error as e:
        raise OSError(f"Interface enumeration failed: {e}") from e

    for name, entries in addrs.items():
        stat = stats.get(name)
        if stat is not None and not stat.isup:
            continue
        for entry in entries:
            if entry.family != socket.AF_INET or not entry.address:
                continue
            yield InterfaceAddress(
                name=name,
                address=entry.address,
                netmask=entry.netmask,
                broadcast=entry.broadcast,
            )


def broadcast_addresses() -> List[str]:
    """
    Get the directed broadcast address of every up, non-loopback interface.

    Order follows interface enumeration order; duplicates are removed.

    Raises:
        OSError: if interface enumeration fails
    """
    addresses: List[str] = []
    for iface in iter_ipv4_interfaces():
        try:
            if iface.is_loopback:
                continue
            bcast = iface.broadcast_address()
        except ValueError:
            logger.debug(f"Skipping {iface.name}: bad address {iface.address}/{iface.netmask}")
            continue
        if bcast and bcast not in addresses:
            addresses.append(bcast)
    return addresses


def resolve_local_ip() -> str:
    """
    Best-effort local IPv4 address for outgoing announcements.

    Returns the first non-loopback address found, preferring routable ones
    over link-local (169.254.x.x). Falls back to 127.0.0.1.
    """
    link_local: Optional[str] = None
    try:
        for iface in iter_ipv4_interfaces():
            if iface.is_loopback:
                continue
            if iface.is_link_local:
                link_local = link_local or iface.address
                continue
            return iface.address
    except (OSError, ValueError) as e:
        logger.warning(f"Could not enumerate interfaces: {e}")
        return LOOPBACK_FALLBACK

    return link_local or LOOPBACK_FALLBACK
