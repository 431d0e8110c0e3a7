"""
Parsing of local network interface listings.

The parser works on the text printed by ``ip addr show``. Running the
command is kept separate (see ``local_listing``) so parsing stays pure.
"""

import ipaddress
import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import MissingField, ParseError

logger = logging.getLogger(__name__)

IFACE_HEADER = re.compile(r"^\d+: ")
IFACE_NAME = re.compile(r"^\d+: ([0-9a-zA-Z\-@._]+)")
IFACE_STATE = re.compile(r"state (\w+)")
IFACE_MAC = re.compile(r"link/\w+ ((?:[0-9a-f]{2}:){5}[0-9a-f]{2})")
IFACE_ADDR = re.compile(r"inet (\d+\.\d+\.\d+\.\d+/\d+)|inet6 ([0-9a-f:]+/\d+)")


@dataclass
class InterfaceRecord:
    """A network interface found on a host."""
    name: str
    mac: str
    state: str
    addresses: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "mac": self.mac,
            "state": self.state,
            "addresses": list(self.addresses),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InterfaceRecord":
        return cls(
            name=data["name"],
            mac=data.get("mac", ""),
            state=data.get("state", "UNKNOWN"),
            addresses=list(data.get("addresses", [])),
        )

    def ip_interfaces(self) -> list:
        """Addresses as ``ipaddress`` interfaces; entries that do not parse are skipped."""
        result = []
        for address in self.addresses:
            try:
                result.append(ipaddress.ip_interface(address))
            except (TypeError, ValueError):
                logger.debug(f"Skipping address {address!r} on {self.name}")
        return result

    def to_listing(self, index: int = 1) -> str:
        """Render the record the way ``ip addr show`` prints it."""
        lines = [
            f"{index}: {self.name}: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 state {self.state} group default qlen 1000",
            f"    link/ether {self.mac} brd ff:ff:ff:ff:ff:ff",
        ]
        for address in self.addresses:
            family = "inet6" if ":" in address else "inet"
            lines.append(f"    {family} {address} scope global")
        return "\n".join(lines)


def split_blocks(listing: str) -> List[str]:
    """Split a listing into one text block per interface."""
    blocks: List[List[str]] = []
    for line in listing.splitlines():
        if IFACE_HEADER.match(line):
            blocks.append([line])
        elif blocks:
            blocks[-1].append(line)
        elif line.strip():
            raise ParseError(f"unexpected text before first interface: {line.strip()!r}")
    return ["\n".join(block) for block in blocks]


def parse_block(block: str) -> InterfaceRecord:
    """
    Parse a single interface block.

    Raises MissingField when the name, state or MAC cannot be found.
    Address tokens that do not parse are skipped.
    """
    lines = block.splitlines()
    header = lines[0] if lines else ""

    name = IFACE_NAME.search(header)
    if not name:
        raise MissingField("name")

    state = IFACE_STATE.search(header)
    if not state:
        raise MissingField("state")

    mac = None
    for line in lines[1:]:
        mac = IFACE_MAC.search(line)
        if mac:
            break
    if not mac:
        raise MissingField("mac")

    addresses = []
    for line in lines[1:]:
        match = IFACE_ADDR.search(line)
        if not match:
            continue
        token = match.group(1) or match.group(2)
        try:
            addresses.append(str(ipaddress.ip_interface(token)))
        except ValueError:
            continue

    return InterfaceRecord(
        name=name.group(1),
        mac=mac.group(1),
        state=state.group(1),
        addresses=addresses,
    )


def parse_interfaces(listing: str, strict: bool = True) -> List[InterfaceRecord]:
    """
    Parse ``ip addr show`` output into interface records.

    With ``strict`` off, blocks missing a required field are skipped
    instead of failing the whole parse.
    """
    records = []
    for block in split_blocks(listing):
        try:
            records.append(parse_block(block))
        except MissingField as e:
            if strict:
                raise
            logger.debug(f"Skipping interface block: {e}")
    return records


def local_listing() -> str:
    """Return the raw interface listing of this machine."""
    try:
        return subprocess.check_output(
            ["ip", "addr", "show"], text=True, stderr=subprocess.DEVNULL
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"Unable to list local interfaces: {e}")
        return ""


def local_interfaces(listing: Optional[str] = None) -> List[InterfaceRecord]:
    """Discover the interfaces of this machine."""
    if listing is None:
        listing = local_listing()
    return parse_interfaces(listing, strict=False)
