"""
Host identity.

A host is a single participant in the mesh: a name, WireGuard key
material, a mesh address and the interfaces it found on itself.
"""

import copy
import ipaddress
import platform
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..errors import ValidationError
from .interfaces import InterfaceRecord, local_interfaces
from .keys import generate_keypair


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_hostname() -> str:
    """Hostname of this machine."""
    return platform.node() or "wgmesh-host"


def parse_address(value: str) -> str:
    """
    Normalize a mesh address.

    Accepts a bare address or an address with prefix length; the prefix is
    dropped since the network subnet supplies it.
    """
    if not value:
        raise ValidationError("address is required")
    try:
        return str(ipaddress.ip_interface(str(value).strip()).ip)
    except ValueError as e:
        raise ValidationError(f"invalid address {value!r}") from e


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class Host:
    """A participant in the mesh."""
    name: str
    address: str
    public_key: str = ""
    private_key: str = ""
    endpoint: Optional[str] = None
    interfaces: List[InterfaceRecord] = field(default_factory=list)
    last_seen: Optional[datetime] = None

    @property
    def ip(self):
        return ipaddress.ip_address(self.address)

    def copy(self) -> "Host":
        return copy.deepcopy(self)

    def public(self) -> "Host":
        """Copy of this host without its private key."""
        host = self.copy()
        host.private_key = ""
        return host

    def validate(self, subnet=None, require_key: bool = False) -> None:
        """Raise ValidationError if this host cannot join the registry."""
        if not self.name or not self.name.strip():
            raise ValidationError("host name is required")
        self.address = parse_address(self.address)
        if subnet is not None and self.ip not in subnet:
            raise ValidationError(f"address {self.address} is outside subnet {subnet}")
        for iface in self.interfaces:
            iface.addresses = [str(i) for i in iface.ip_interfaces()]
        if require_key and not self.public_key:
            raise ValidationError(f'host "{self.name}" has no public key')

    def to_dict(self, include_private: bool = True) -> dict:
        data = {
            "name": self.name,
            "address": self.address,
            "public_key": self.public_key,
            "endpoint": self.endpoint,
            "interfaces": [i.to_dict() for i in self.interfaces],
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }
        if include_private:
            data["private_key"] = self.private_key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Host":
        return cls(
            name=data["name"],
            address=parse_address(data["address"]),
            public_key=data.get("public_key") or "",
            private_key=data.get("private_key") or "",
            endpoint=data.get("endpoint"),
            interfaces=[InterfaceRecord.from_dict(i) for i in data.get("interfaces") or []],
            last_seen=_parse_timestamp(data.get("last_seen")),
        )

    @classmethod
    def local(
        cls,
        address: str,
        name: Optional[str] = None,
        listing: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> "Host":
        """Describe the machine this runs on, with fresh keys."""
        private_key, public_key = generate_keypair()
        return cls(
            name=name or local_hostname(),
            address=parse_address(address),
            public_key=public_key,
            private_key=private_key,
            endpoint=endpoint,
            interfaces=local_interfaces(listing),
        )
