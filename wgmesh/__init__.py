"""
wgmesh - WireGuard mesh coordination

Hosts register with a coordinator, get a mesh address, and render their
WireGuard peer configuration from the shared network description.

Example:
    >>> from wgmesh import MeshNetwork, CoordinationServer
    >>> coordinator = CoordinationServer(MeshNetwork.generate("10.42.0.0/24"))
    >>> coordinator.connect(host)
"""

__version__ = "0.1.0"

from .config import Config, get_config
from .mesh.network import MeshNetwork
from .mesh.coordinator import CoordinationServer

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "MeshNetwork",
    "CoordinationServer",
]
