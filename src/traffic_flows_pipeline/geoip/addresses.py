"""
Classification of addresses that must never be sent to a geolocation
provider.
"""

import ipaddress
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# 0.0.0.0/8 ("this network") is not covered by is_private on every
# interpreter version, so it is listed explicitly.
_THIS_NETWORK = ipaddress.ip_network("0.0.0.0/8")


def parse_address(address: Optional[str]) -> Optional[IPAddress]:
    """Parse an address string, returning None for empty or invalid input."""
    if not address:
        return None
    text = address.strip()
    # Strip IPv6 zone index (fe80::1%eth0)
    if "%" in text:
        text = text.split("%", 1)[0]
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def is_private_address(address: Optional[str]) -> bool:
    """
    Return True if an address is not publicly routable.

    Covers empty and unparsable input, loopback, RFC 1918, link-local,
    0.0.0.0/8, IPv6 unique-local (fc00::/7) and link-local (fe80::/10).
    IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) are always treated as
    private, matching how the controller reports local sockets.

    Examples:
        >>> is_private_address("10.1.2.3")
        True
        >>> is_private_address("8.8.8.8")
        False
    """
    ip = parse_address(address)
    if ip is None:
        return True

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return True

    if isinstance(ip, ipaddress.IPv4Address) and ip in _THIS_NETWORK:
        return True

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_multicast
        or ip.is_reserved
    )
