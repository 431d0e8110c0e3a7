"""
Joining a mesh from a host.

The host describes itself, picks a free address in the coordinator's subnet
and announces itself with ``POST /connect``. Retrying after a failed or
timed out connect is the host's job; the coordinator never calls back.
"""

import logging
from typing import Any, List, Optional

import aiohttp

from ..errors import ConflictError, MeshError, ValidationError
from .address import allocate_address
from .host import Host
from .network import NetworkSnapshot

logger = logging.getLogger(__name__)

# Attempts made when an auto-allocated address is taken concurrently
MAX_JOIN_ATTEMPTS = 3


class MeshJoin:
    """
    Client for a wgmesh coordinator.

    Steps:
    1. Fetch the network to learn the subnet and taken addresses
    2. Describe this host with a free address and fresh keys
    3. Submit the public half of the identity to the coordinator
    """

    def __init__(self, coordinator_url: str, timeout: float = 30.0):
        if not coordinator_url.startswith("http"):
            coordinator_url = f"http://{coordinator_url}"
        self.url = coordinator_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "MeshJoin":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @staticmethod
    def build_connect_request(host: Host) -> dict:
        """Connect payload; never includes the private key."""
        payload = host.to_dict(include_private=False)
        payload.pop("last_seen", None)
        return payload

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        session = await self._get_session()
        try:
            async with session.request(method, f"{self.url}{path}", json=payload) as resp:
                if resp.content_type == "application/json":
                    body = await resp.json()
                else:
                    body = await resp.text()

                if resp.status < 400:
                    return body

                detail = body.get("detail", body) if isinstance(body, dict) else body
                if resp.status == 400:
                    raise ValidationError(f"Rejected by coordinator: {detail}")
                if resp.status == 409:
                    raise ConflictError(f"Conflict: {detail}")
                raise MeshError(f"Coordinator returned {resp.status}: {detail}")
        except aiohttp.ClientError as e:
            raise MeshError(f"Connection failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return (await self._request("GET", "/ping")).strip() == "pong"
        except MeshError:
            return False

    async def info(self) -> NetworkSnapshot:
        return NetworkSnapshot.from_dict(await self._request("GET", "/"))

    async def connect(self, host: Host) -> Host:
        """Announce ``host``; returns the record stored by the coordinator."""
        data = await self._request("POST", "/connect", self.build_connect_request(host))
        return Host.from_dict(data)

    async def disconnect(self, address: str) -> bool:
        """Leave the mesh. Returns whether the coordinator knew the address."""
        data = await self._request("POST", "/disconnect", {"address": address})
        return data.get("removed") is not None

    async def events(self, limit: Optional[int] = None) -> List[dict]:
        path = f"/events?limit={limit}" if limit else "/events"
        return await self._request("GET", path)

    async def discover(self) -> List[dict]:
        return (await self._request("GET", "/discover"))["hosts"]

    async def join(
        self,
        host: Optional[Host] = None,
        name: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> Host:
        """
        Join the mesh.

        With no ``host``, this machine is described with fresh keys and an
        address picked from the coordinator's subnet. The returned host keeps
        its private key, which the coordinator never sees.
        """
        allocate = host is None or not host.address
        attempts = MAX_JOIN_ATTEMPTS if allocate else 1

        for attempt in range(1, attempts + 1):
            if allocate:
                network = await self.info()
                taken = [h.address for h in network.hosts()]
                address = str(allocate_address(network.subnet, taken))
                if host is None:
                    host = Host.local(address, name=name, endpoint=endpoint)
                else:
                    host.address = address

            try:
                stored = await self.connect(host)
            except ConflictError as e:
                if attempt == attempts:
                    raise
                logger.info(f"Address {host.address} was taken, retrying: {e}")
                continue

            stored.private_key = host.private_key
            logger.info(f"Joined mesh as {stored.name} at {stored.address}")
            return stored

