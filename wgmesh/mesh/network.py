"""
The mesh registry.

A MeshNetwork is the authoritative set of hosts taking part in one mesh:
the coordinator's own host plus every remote host that registered with it,
keyed by mesh address. Names and addresses are unique across all entries.
"""

import ipaddress
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Union

from ..config import DEFAULT_SUBNET
from ..errors import AddressConflict, NameConflict, ValidationError
from .address import IPNetwork, allocate_address
from .host import Host, parse_address, utcnow

logger = logging.getLogger(__name__)


def parse_subnet(value: Union[str, IPNetwork]) -> IPNetwork:
    if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return value
    try:
        return ipaddress.ip_network(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"invalid subnet {value!r}") from e


@dataclass(frozen=True)
class NetworkSnapshot:
    """Read-only copy of a MeshNetwork taken at one point in time."""
    network_id: str
    subnet: IPNetwork
    local_host: Host
    remote_hosts: Mapping[str, Host]

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkSnapshot":
        """Rebuild a snapshot served by a coordinator."""
        remote_hosts = {}
        for host_data in (data.get("remote_hosts") or {}).values():
            host = Host.from_dict(host_data)
            remote_hosts[host.address] = host
        return cls(
            network_id=str(data["network_id"]),
            subnet=parse_subnet(data["subnet"]),
            local_host=Host.from_dict(data["local_host"]),
            remote_hosts=MappingProxyType(remote_hosts),
        )

    def hosts(self) -> List[Host]:
        return [self.local_host] + sorted(self.remote_hosts.values(), key=lambda h: h.ip)

    def to_dict(self, include_private: bool = False) -> dict:
        return {
            "network_id": self.network_id,
            "subnet": str(self.subnet),
            "local_host": self.local_host.to_dict(include_private),
            "remote_hosts": {
                address: host.to_dict(include_private)
                for address, host in sorted(
                    self.remote_hosts.items(), key=lambda item: item[1].ip
                )
            },
        }


@dataclass
class MeshNetwork:
    """
    Registry root for one mesh.

    Every mutating call checks name and address uniqueness against the
    local host and all remote hosts.
    """
    network_id: str
    subnet: IPNetwork
    local_host: Host
    remote_hosts: Dict[str, Host] = field(default_factory=dict)

    @classmethod
    def generate(
        cls,
        subnet: Union[str, IPNetwork] = DEFAULT_SUBNET,
        name: Optional[str] = None,
        listing: Optional[str] = None,
    ) -> "MeshNetwork":
        """Create a brand new network with a fresh id and no remote hosts."""
        subnet = parse_subnet(subnet)
        address = allocate_address(subnet, [], highest=True)
        local_host = Host.local(str(address), name=name, listing=listing)
        network = cls(
            network_id=uuid.uuid4().hex,
            subnet=subnet,
            local_host=local_host,
        )
        logger.info(f"Generated network {network.network_id} on {subnet}")
        return network

    def __iter__(self) -> Iterator[Host]:
        yield self.local_host
        yield from self.remote_hosts.values()

    def __len__(self) -> int:
        return len(self.remote_hosts)

    def taken_addresses(self) -> List[str]:
        return [host.address for host in self]

    def allocate(self, highest: bool = False) -> str:
        """Next free mesh address in the subnet."""
        return str(allocate_address(self.subnet, self.taken_addresses(), highest))

    def _check_name(self, host: Host, own_address: Optional[str] = None) -> None:
        for existing in self:
            if existing.name == host.name and existing.address != own_address:
                raise NameConflict(host.name)

    def _holder(self, address: str) -> Optional[Host]:
        if self.local_host.address == address:
            return self.local_host
        return self.remote_hosts.get(address)

    def add_host(self, host: Host) -> Host:
        """
        Add a new remote host.

        Raises NameConflict or AddressConflict if the host collides with any
        existing entry; the registry is left unchanged in that case.
        """
        host.validate(self.subnet)
        self._check_name(host)
        holder = self._holder(host.address)
        if holder is not None:
            raise AddressConflict(host.address, holder.name)
        self.remote_hosts[host.address] = host.copy()
        logger.info(f"Added host {host.name} at {host.address}")
        return self.remote_hosts[host.address]

    def remove_host(self, name: str) -> Optional[Host]:
        """Remove a remote host by name. Absent names are ignored."""
        for address, host in list(self.remote_hosts.items()):
            if host.name == name:
                return self.remove_host_by_address(address)
        return None

    def remove_host_by_address(self, address: str) -> Optional[Host]:
        """Remove a remote host by mesh address. Absent addresses are ignored."""
        host = self.remote_hosts.pop(parse_address(address), None)
        if host is not None:
            logger.info(f"Removed host {host.name} at {host.address}")
        return host

    def check_connect(self, host: Host) -> None:
        """Raise if ``host`` may not take the slot at its address."""
        if host.address == self.local_host.address:
            raise AddressConflict(host.address, self.local_host.name)
        self._check_name(host, own_address=host.address)

    def upsert_on_connect(self, host: Host, now: Optional[datetime] = None) -> Host:
        """
        Insert or overwrite the entry for ``host.address``.

        The stored entry gets ``last_seen`` stamped. Whether an existing entry
        at the same address belongs to the same host is for the caller to
        decide; names must still be unique across entries.
        """
        host.validate(self.subnet)
        self.check_connect(host)

        entry = host.copy()
        entry.last_seen = now or utcnow()
        self.remote_hosts[entry.address] = entry
        return entry.copy()

    def lookup_by_name(self, name: str) -> Optional[Host]:
        for host in self:
            if host.name == name:
                return host
        return None

    def lookup_by_address(self, address: str) -> Optional[Host]:
        return self._holder(parse_address(address))

    def snapshot(self) -> NetworkSnapshot:
        return NetworkSnapshot(
            network_id=self.network_id,
            subnet=self.subnet,
            local_host=self.local_host.copy(),
            remote_hosts=MappingProxyType(
                {address: host.copy() for address, host in self.remote_hosts.items()}
            ),
        )

    def to_dict(self) -> dict:
        return self.snapshot().to_dict(include_private=True)

    @classmethod
    def from_dict(cls, data: dict) -> "MeshNetwork":
        network = cls(
            network_id=str(data["network_id"]),
            subnet=parse_subnet(data["subnet"]),
            local_host=Host.from_dict(data["local_host"]),
        )
        for host_data in (data.get("remote_hosts") or {}).values():
            network.add_host(Host.from_dict(host_data))
        return network
