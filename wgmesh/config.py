"""
Configuration management for wgmesh.

Handles:
- Data directory and file locations
- Coordinator server settings
- Defaults for new networks
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".wgmesh"

DEFAULT_API_PORT = 64001       # Coordinator HTTP API
DEFAULT_LISTEN_PORT = 51820    # WireGuard UDP port
DEFAULT_SUBNET = "10.42.0.0/24"
DEFAULT_EVENT_CAPACITY = 1000


@dataclass
class ServerConfig:
    """Configuration for the coordinator API server."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_API_PORT
    cors_origins: List[str] = field(default_factory=list)

    @property
    def bind(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "cors_origins": self.cors_origins,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        known_fields = {"host", "port", "cors_origins"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})


@dataclass
class Config:
    """
    Main wgmesh configuration.

    Stored at ~/.wgmesh/config.json
    """
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    network_file: Optional[str] = None

    server: ServerConfig = field(default_factory=ServerConfig)

    default_subnet: str = DEFAULT_SUBNET
    event_capacity: int = DEFAULT_EVENT_CAPACITY
    listen_port: int = DEFAULT_LISTEN_PORT
    log_level: str = "info"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def network_path(self) -> Path:
        if self.network_file:
            return Path(self.network_file)
        return self.data_dir / "network.yaml"

    @property
    def identity_path(self) -> Path:
        return self.data_dir / "identity.yaml"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        data = {
            "network_file": self.network_file,
            "server": self.server.to_dict(),
            "default_subnet": self.default_subnet,
            "event_capacity": self.event_capacity,
            "listen_port": self.listen_port,
            "log_level": self.log_level,
        }

        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk."""
        data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, 'r') as f:
            data = json.load(f)

        config = cls(
            data_dir=data_dir,
            network_file=data.get("network_file"),
            default_subnet=data.get("default_subnet", DEFAULT_SUBNET),
            event_capacity=data.get("event_capacity", DEFAULT_EVENT_CAPACITY),
            listen_port=data.get("listen_port", DEFAULT_LISTEN_PORT),
            log_level=data.get("log_level", "info"),
        )

        if "server" in data:
            config.server = ServerConfig.from_dict(data["server"])

        return config


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
