"""
FastAPI server for the wgmesh coordinator.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config, get_config
from ..errors import StorageError
from ..mesh.coordinator import CoordinationServer
from ..mesh.store import NetworkStore

logger = logging.getLogger(__name__)


def build_coordinator(config: Config) -> CoordinationServer:
    """
    Load the persisted network, or start a fresh one.

    A network that cannot be read is replaced by a new default network
    rather than stopping the server.
    """
    store = NetworkStore(config.network_path)
    network = store.load_or_create(config.default_subnet)
    if not store.exists():
        try:
            store.save(network)
        except StorageError as e:
            logger.warning(f"Network is kept in memory only: {e}")
    return CoordinationServer(network, store=store, event_capacity=config.event_capacity)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    if app.state.coordinator is None:
        app.state.coordinator = build_coordinator(app.state.config)

    snapshot = app.state.coordinator.info()
    logger.info(
        f"Coordinating network {snapshot.network_id} on {snapshot.subnet} "
        f"({len(snapshot.remote_hosts)} remote hosts)"
    )

    yield

    # Shutdown
    logger.info("wgmesh coordinator stopped")


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(
    config: Optional[Config] = None,
    coordinator: Optional[CoordinationServer] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from .. import __version__
    from .routes import router

    config = config or get_config()

    app = FastAPI(
        title="wgmesh",
        description="Coordinator for a WireGuard mesh network",
        version=__version__,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.coordinator = coordinator

    if config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.include_router(router)

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 64001,
    config: Optional[Config] = None,
):
    """Run the coordinator with uvicorn."""
    config = config or get_config()
    app = create_app(config)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=config.log_level,
    )
