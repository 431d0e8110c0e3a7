"""
Mesh registry for wgmesh.

Provides:
- Mesh address allocation
- Interface listing parser
- Host identity and the network registry
- Connect/disconnect event log
- YAML persistence
"""

from .address import allocate_address, generate_ipv6
from .events import Connect, Disconnect, Event, EventLog
from .host import Host
from .interfaces import InterfaceRecord, parse_interfaces
from .network import MeshNetwork, NetworkSnapshot
from .store import NetworkStore

__all__ = [
    # Addresses
    "allocate_address",
    "generate_ipv6",
    # Hosts
    "Host",
    "InterfaceRecord",
    "parse_interfaces",
    # Registry
    "MeshNetwork",
    "NetworkSnapshot",
    "NetworkStore",
    # Events
    "Event",
    "EventLog",
    "Connect",
    "Disconnect",
]
