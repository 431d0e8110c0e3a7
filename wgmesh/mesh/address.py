"""
Mesh address allocation.

Unique local IPv6 addresses follow RFC 4193 section 3.2.1:

    | 7 bits |1|  40 bits   |  16 bits  |          64 bits           |
    +--------+-+------------+-----------+----------------------------+
    | Prefix |L| Global ID  | Subnet ID |        Interface ID        |
"""

import ipaddress
import logging
import secrets
from typing import Iterable, Optional, Union

from ..errors import ValidationError, ValueOutOfRange

logger = logging.getLogger(__name__)

ULA_PREFIX = 0xFC
ULA_NETWORK = ipaddress.IPv6Network("fc00::/7")

GLOBAL_ID_BITS = 40
SUBNET_ID_BITS = 16
INTERFACE_ID_BITS = 64

# Random candidates tried before giving up on a sparse IPv6 subnet
MAX_RANDOM_ATTEMPTS = 64

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def _check_width(name: str, value: int, bits: int) -> None:
    if value < 0 or value >= 2 ** bits:
        raise ValueOutOfRange(f"{name} may only be {bits} bits wide")


def generate_ipv6(
    global_id: Optional[int] = None,
    subnet_id: Optional[int] = None,
    iface_id: Optional[int] = None,
) -> ipaddress.IPv6Address:
    """
    Create an IPv6 address in the unique local scope.

    global_id: 40 bits, default 0
    subnet_id: 16 bits, default 0
    iface_id: 64 bits, default random

    Identical inputs always give the same address.
    """
    global_id = global_id or 0
    subnet_id = subnet_id or 0
    if iface_id is None:
        iface_id = secrets.randbits(INTERFACE_ID_BITS)

    _check_width("global_id", global_id, GLOBAL_ID_BITS)
    _check_width("subnet_id", subnet_id, SUBNET_ID_BITS)
    _check_width("iface_id", iface_id, INTERFACE_ID_BITS)

    value = (
        (ULA_PREFIX << 120)
        | (global_id << 80)
        | (subnet_id << 64)
        | iface_id
    )
    return ipaddress.IPv6Address(value)


def _random_ula_candidate(subnet: ipaddress.IPv6Network) -> ipaddress.IPv6Address:
    network = int(subnet.network_address)
    global_id = (network >> 80) & (2 ** GLOBAL_ID_BITS - 1)
    subnet_id = (network >> 64) & (2 ** SUBNET_ID_BITS - 1)
    address = generate_ipv6(global_id, subnet_id)
    # L bit comes from the subnet (fc00::/8 vs fd00::/8)
    return ipaddress.IPv6Address(int(address) | (network & (1 << 120)))


def allocate_address(
    subnet: IPNetwork,
    taken: Iterable[str],
    highest: bool = False,
) -> IPAddress:
    """
    Pick a free host address inside ``subnet``.

    Unique local IPv6 subnets of /64 or wider get a random interface id.
    Everything else is scanned from the low end (or the high end when
    ``highest`` is set).
    """
    used = {ipaddress.ip_address(a) for a in taken}

    if (
        subnet.version == 6
        and subnet.prefixlen <= 64
        and subnet.subnet_of(ULA_NETWORK)
    ):
        for _ in range(MAX_RANDOM_ATTEMPTS):
            candidate = _random_ula_candidate(subnet)
            if candidate in subnet and candidate not in used:
                return candidate

    first = int(subnet.network_address)
    last = int(subnet.broadcast_address)
    if subnet.num_addresses > 2:
        # network and broadcast addresses are not usable host addresses
        first += 1
        if subnet.version == 4:
            last -= 1

    address_type = type(subnet.network_address)
    step = -1 if highest else 1
    value = last if highest else first
    while first <= value <= last:
        candidate = address_type(value)
        if candidate not in used:
            return candidate
        value += step

    raise ValidationError(f"no free address left in {subnet}")
