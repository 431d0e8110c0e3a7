"""
Render registry state into WireGuard peer configuration.

Output is fully determined by the snapshot it is given: hosts are ordered by
mesh address and every list inside a block is sorted, so rendering an
unchanged registry twice yields identical text.
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .errors import IncompleteHost, ValidationError
from .mesh.address import IPNetwork
from .mesh.host import Host

PERSISTENT_KEEPALIVE = 25


@dataclass(frozen=True)
class PeerConfigBlock:
    """One [Peer] section."""
    name: str
    public_key: str
    allowed_ips: Tuple[str, ...]
    endpoint: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "public_key": self.public_key,
            "allowed_ips": list(self.allowed_ips),
            "endpoint": self.endpoint,
        }

    def to_lines(self) -> List[str]:
        lines = [
            f"# {self.name}",
            "[Peer]",
            f"PublicKey = {self.public_key}",
            f"AllowedIPs = {', '.join(self.allowed_ips)}",
        ]
        if self.endpoint:
            lines.append(f"Endpoint = {self.endpoint}")
        lines.append(f"PersistentKeepalive = {PERSISTENT_KEEPALIVE}")
        return lines


def _host_route(host: Host) -> IPNetwork:
    ip = host.ip
    return ipaddress.ip_network(f"{ip}/{ip.max_prefixlen}")


def _interface_routes(host: Host) -> List[IPNetwork]:
    routes = []
    for iface in host.interfaces:
        for address in iface.ip_interfaces():
            network = address.network
            if network.is_loopback or network.is_link_local:
                continue
            routes.append(network)
    return routes


def peer_block(host: Host, include_interface_subnets: bool = False) -> PeerConfigBlock:
    """Build the peer block for one host."""
    if not host.public_key:
        raise IncompleteHost(host.name)

    routes = {_host_route(host)}
    if include_interface_subnets:
        routes.update(_interface_routes(host))

    allowed_ips = tuple(
        str(r) for r in sorted(routes, key=lambda r: (r.version, r.network_address, r.prefixlen))
    )
    return PeerConfigBlock(
        name=host.name,
        public_key=host.public_key,
        allowed_ips=allowed_ips,
        endpoint=host.endpoint,
    )


def _render(hosts: Iterable[Host], include_interface_subnets: bool) -> List[PeerConfigBlock]:
    ordered = sorted(hosts, key=lambda h: (h.ip.version, h.ip))
    return [peer_block(h, include_interface_subnets) for h in ordered]


def render_peers(network, include_interface_subnets: bool = False) -> List[PeerConfigBlock]:
    """
    One peer block per remote host of ``network``.

    ``network`` may be a MeshNetwork or a NetworkSnapshot. Raises
    IncompleteHost for the first host without a public key.
    """
    return _render(network.remote_hosts.values(), include_interface_subnets)


def render_for(network, name: str, include_interface_subnets: bool = False) -> List[PeerConfigBlock]:
    """Peer blocks as seen by the member called ``name``."""
    hosts = [network.local_host] + list(network.remote_hosts.values())
    if not any(h.name == name for h in hosts):
        raise ValidationError(f'no host named "{name}" in the network')
    return _render((h for h in hosts if h.name != name), include_interface_subnets)


def render_config(
    host: Host,
    peers: List[PeerConfigBlock],
    subnet,
    listen_port: Optional[int] = None,
) -> str:
    """
    Full wg-quick configuration for ``host``.

    The private key line is only written when the host's private key is
    known; a coordinator rendering for a remote host never has it.
    """
    lines = [
        f"# {host.name}",
        "[Interface]",
        f"Address = {host.address}/{subnet.prefixlen}",
    ]
    if host.private_key:
        lines.append(f"PrivateKey = {host.private_key}")
    if listen_port:
        lines.append(f"ListenPort = {listen_port}")

    for peer in peers:
        lines.append("")
        lines.extend(peer.to_lines())

    return "\n".join(lines) + "\n"
