"""
backend/addresses.py

IP address helpers shared by the tracker, the scorer and the geo resolver.
"""

from __future__ import annotations

import ipaddress


def parse_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Parse *value* as an IPv4/IPv6 address, or return None."""
    try:
        return ipaddress.ip_address(value.strip().strip("[]"))
    except (ValueError, AttributeError):
        return None


def is_private_address(ip: str) -> bool:
    """True for private, loopback and link-local addresses (v4 or v6)."""
    addr = parse_ip(ip)
    if addr is None:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local
