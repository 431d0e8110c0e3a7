"""
HTTP API for the wgmesh coordinator.

Provides endpoints for:
- Host connect/disconnect
- Network info and discovery
- Event listing
- Rendered peer configuration
"""

from .server import create_app, build_coordinator
from .routes import router

__all__ = [
    "create_app",
    "build_coordinator",
    "router",
]
