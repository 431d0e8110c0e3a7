"""
The coordination server.

Owns the registry and the event log for one mesh and serializes every
operation on them through a single lock. Persistence happens after the lock
is released, from a snapshot taken while it was held.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from ..errors import AddressConflict, LockFailure, MeshError, ValidationError
from ..render import PeerConfigBlock, render_peers
from .events import DEFAULT_CAPACITY, Event, EventLog, connect_event, disconnect_event
from .host import Host, parse_address
from .keys import is_valid_key
from .network import MeshNetwork, NetworkSnapshot
from .store import NetworkStore

logger = logging.getLogger(__name__)


class CoordinationServer:
    """
    Concurrency-safe access to a MeshNetwork and its EventLog.

    Any unexpected exception raised while the lock is held leaves the state
    poisoned: every later call fails with LockFailure until the process is
    restarted.
    """

    def __init__(
        self,
        network: MeshNetwork,
        store: Optional[NetworkStore] = None,
        event_capacity: int = DEFAULT_CAPACITY,
    ):
        self._network = network
        self._events = EventLog(event_capacity)
        self._store = store
        self._lock = threading.Lock()
        self._poisoned = False

        # Saves run outside the main lock; versions keep them in order
        self._save_lock = threading.Lock()
        self._version = 0
        self._saved_version = 0

    @property
    def store(self) -> Optional[NetworkStore]:
        return self._store

    @contextmanager
    def _critical(self) -> Iterator[Tuple[MeshNetwork, EventLog]]:
        with self._lock:
            if self._poisoned:
                raise LockFailure("coordinator state is poisoned; restart required")
            try:
                yield self._network, self._events
            except MeshError:
                raise
            except Exception:
                self._poisoned = True
                logger.exception("Unexpected failure while holding coordinator lock")
                raise

    def _bump(self) -> Tuple[NetworkSnapshot, int]:
        self._version += 1
        return self._network.snapshot(), self._version

    def _persist(self, snapshot: NetworkSnapshot, version: int) -> None:
        if self._store is None:
            return
        with self._save_lock:
            if version <= self._saved_version:
                return
            self._store.save(snapshot)
            self._saved_version = version

    def connect(self, host: Host) -> Host:
        """
        Register or refresh a host.

        Returns the stored record with ``last_seen`` set by the server.
        """
        host = host.copy()
        # the coordinator never keeps a remote host's private key
        host.private_key = ""
        host.last_seen = None
        host.validate(self._network.subnet, require_key=True)
        if not is_valid_key(host.public_key):
            raise ValidationError(f'host "{host.name}" has an invalid public key')

        with self._critical() as (network, events):
            existing = network.remote_hosts.get(host.address)
            if existing is not None and existing.name != host.name:
                raise AddressConflict(host.address, existing.name)
            network.check_connect(host)

            events.record(connect_event(host))
            updated = network.upsert_on_connect(host)
            snapshot, version = self._bump()

        logger.info(f"connect {updated.name}: {updated.address}")
        self._persist(snapshot, version)
        return updated.public()

    def disconnect(self, address: str) -> Optional[Host]:
        """Remove the host at ``address``. Unknown addresses are a no-op."""
        address = parse_address(address)
        with self._critical() as (network, events):
            host = network.remote_hosts.get(address)
            if host is None:
                return None
            events.record(disconnect_event(host))
            network.remove_host_by_address(address)
            snapshot, version = self._bump()

        logger.info(f"disconnect {host.name}: {host.address}")
        self._persist(snapshot, version)
        return host.public()

    def info(self) -> NetworkSnapshot:
        with self._critical() as (network, _):
            return network.snapshot()

    def list_events(self, limit: Optional[int] = None) -> List[Event]:
        with self._critical() as (_, events):
            return events.list(limit)

    def discover(self) -> List[dict]:
        """Reachability hints for every host in the mesh."""
        snapshot = self.info()
        hints = []
        for host in snapshot.hosts():
            candidates = []
            for iface in host.interfaces:
                for address in iface.ip_interfaces():
                    ip = address.ip
                    if ip.is_loopback or ip.is_link_local:
                        continue
                    candidates.append(str(ip))
            hints.append({
                "name": host.name,
                "address": host.address,
                "endpoint": host.endpoint,
                "last_seen": host.last_seen.isoformat() if host.last_seen else None,
                "candidates": candidates,
            })
        return hints

    def peers(self) -> List[PeerConfigBlock]:
        return render_peers(self.info())
