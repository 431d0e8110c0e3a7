"""
API routes for the wgmesh coordinator.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..errors import ConflictError, IncompleteHost, MeshError, ValidationError
from ..mesh.coordinator import CoordinationServer
from ..mesh.host import Host
from ..mesh.interfaces import InterfaceRecord

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Request/Response Models ============

class InterfaceModel(BaseModel):
    """A network interface reported by a host."""
    name: str
    mac: str = ""
    state: str = "UNKNOWN"
    addresses: List[str] = Field(default_factory=list)


class HostInfo(BaseModel):
    """Public view of a host."""
    name: str = Field(..., min_length=1, description="Unique host name")
    address: str = Field(..., min_length=1, description="Mesh address inside the network subnet")
    public_key: str = ""
    endpoint: Optional[str] = Field(default=None, description="host:port WireGuard endpoint")
    interfaces: List[InterfaceModel] = Field(default_factory=list)
    last_seen: Optional[datetime] = None

    @classmethod
    def from_host(cls, host: Host) -> "HostInfo":
        return cls(**host.to_dict(include_private=False))


class ConnectRequest(HostInfo):
    """A host announcing itself to the coordinator."""
    private_key: Optional[str] = Field(default=None, description="Ignored; never stored")

    def to_host(self) -> Host:
        return Host(
            name=self.name,
            address=self.address,
            public_key=self.public_key,
            endpoint=self.endpoint,
            interfaces=[InterfaceRecord(**i.model_dump()) for i in self.interfaces],
        )


class DisconnectRequest(BaseModel):
    """Request to leave the mesh."""
    address: str = Field(..., min_length=1)


class DisconnectResponse(BaseModel):
    status: str = "ok"
    removed: Optional[HostInfo] = None


class EventInfo(BaseModel):
    """A connect or disconnect event."""
    id: str
    created_at: datetime
    type: str
    host: HostInfo


class NetworkInfo(BaseModel):
    """Snapshot of the mesh network."""
    network_id: str
    subnet: str
    local_host: HostInfo
    remote_hosts: Dict[str, HostInfo]


class PeerInfo(BaseModel):
    name: str
    public_key: str
    allowed_ips: List[str]
    endpoint: Optional[str] = None


# ============ Helpers ============

def get_coordinator(request: Request) -> CoordinationServer:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Server not ready")
    return coordinator


def _http_error(e: MeshError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (ConflictError, IncompleteHost)):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Request failed: {e}")
    return HTTPException(status_code=500, detail=str(e))


# ============ Routes ============

@router.get("/ping", response_class=PlainTextResponse)
def ping():
    """Liveness check."""
    return "pong"


@router.get("/", response_model=NetworkInfo)
def info(coordinator: CoordinationServer = Depends(get_coordinator)):
    """Current network: id, subnet, local host and remote hosts."""
    try:
        snapshot = coordinator.info()
    except MeshError as e:
        raise _http_error(e)
    return snapshot.to_dict()


@router.post("/connect", response_model=HostInfo)
def connect(
    request: ConnectRequest,
    coordinator: CoordinationServer = Depends(get_coordinator),
):
    """
    Register a host, or refresh its entry.

    Returns the stored record with ``last_seen`` set by the coordinator.
    """
    try:
        host = coordinator.connect(request.to_host())
    except MeshError as e:
        raise _http_error(e)
    return HostInfo.from_host(host)


@router.post("/disconnect", response_model=DisconnectResponse)
def disconnect(
    request: DisconnectRequest,
    coordinator: CoordinationServer = Depends(get_coordinator),
):
    """Remove the host at an address. Unknown addresses are not an error."""
    try:
        removed = coordinator.disconnect(request.address)
    except MeshError as e:
        raise _http_error(e)
    return DisconnectResponse(removed=HostInfo.from_host(removed) if removed else None)


@router.get("/discover")
def discover(coordinator: CoordinationServer = Depends(get_coordinator)) -> Dict[str, Any]:
    """Reachability hints for every host."""
    try:
        return {"hosts": coordinator.discover()}
    except MeshError as e:
        raise _http_error(e)


@router.get("/events", response_model=List[EventInfo])
def list_events(
    limit: Optional[int] = Query(default=None, ge=1),
    coordinator: CoordinationServer = Depends(get_coordinator),
):
    """Recent connect/disconnect events, most recent first."""
    try:
        events = coordinator.list_events(limit)
    except MeshError as e:
        raise _http_error(e)
    return [event.to_dict() for event in events]


@router.get("/peers", response_model=List[PeerInfo])
def peers(coordinator: CoordinationServer = Depends(get_coordinator)):
    """Rendered WireGuard peer blocks for every remote host."""
    try:
        blocks = coordinator.peers()
    except MeshError as e:
        raise _http_error(e)
    return [block.to_dict() for block in blocks]
