"""
Durable storage of the mesh network as YAML.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import yaml

from ..errors import MeshError, StorageError
from .host import Host
from .network import DEFAULT_SUBNET, MeshNetwork

logger = logging.getLogger(__name__)


class NetworkStore:
    """
    Reads and writes a MeshNetwork at a fixed path.

    The file holds the local host's private key, so it is written owner
    read/write only.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> MeshNetwork:
        try:
            with open(self.path, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"unable to read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not contain a network")

        try:
            network = MeshNetwork.from_dict(data)
        except (KeyError, TypeError, ValueError, MeshError) as e:
            raise StorageError(f"invalid network in {self.path}: {e}") from e

        logger.info(f"Loaded network {network.network_id} with {len(network)} remote hosts from {self.path}")
        return network

    def save(self, network: MeshNetwork) -> Path:
        data = network.to_dict() if isinstance(network, MeshNetwork) else network.to_dict(include_private=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, 'w') as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(f"unable to write {self.path}: {e}") from e

        logger.debug(f"Network saved to {self.path}")
        return self.path

    def load_or_create(
        self,
        subnet: str = DEFAULT_SUBNET,
        name: Optional[str] = None,
    ) -> MeshNetwork:
        """Load the network, or generate a new one if it cannot be read."""
        try:
            return self.load()
        except StorageError as e:
            if self.exists():
                logger.warning(f"{e}; starting with a new network")
            else:
                logger.info(f"No network at {self.path}; generating one")
        return MeshNetwork.generate(subnet, name=name)


def save_identity(host: Host, path: Union[str, Path]) -> Path:
    """Save a joined host, private key included, readable by the owner only."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(host.to_dict(), f, default_flow_style=False, sort_keys=False)
        path.chmod(0o600)
    except OSError as e:
        raise StorageError(f"unable to write {path}: {e}") from e
    return path


def load_identity(path: Union[str, Path]) -> Optional[Host]:
    """Load a saved host identity, or None if there is none."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, 'r') as f:
            return Host.from_dict(yaml.safe_load(f))
    except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError, MeshError) as e:
        raise StorageError(f"unable to read identity {path}: {e}") from e
