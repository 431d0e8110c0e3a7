"""
Tests for hosts and the mesh registry.
"""

import ipaddress
from datetime import datetime, timezone

import pytest

from wgmesh.errors import AddressConflict, NameConflict, ValidationError
from wgmesh.mesh.host import Host, parse_address
from wgmesh.mesh.keys import generate_keypair
from wgmesh.mesh.network import MeshNetwork

EMPTY_LISTING = ""


def make_host(name: str, address: str, **kwargs) -> Host:
    private_key, public_key = generate_keypair()
    kwargs.setdefault("public_key", public_key)
    kwargs.setdefault("private_key", private_key)
    return Host(name=name, address=address, **kwargs)


@pytest.fixture
def network():
    return MeshNetwork.generate("10.42.0.0/24", name="coordinator", listing=EMPTY_LISTING)


class TestHost:
    """Tests for Host."""

    def test_parse_address_drops_prefix(self):
        """Addresses are stored without prefix length."""
        assert parse_address("10.42.0.5/24") == "10.42.0.5"
        assert parse_address("fd00::0001") == "fd00::1"

    def test_parse_address_invalid(self):
        """Garbage addresses are rejected."""
        with pytest.raises(ValidationError):
            parse_address("not-an-ip")
        with pytest.raises(ValidationError):
            parse_address("")

    def test_public_drops_private_key(self):
        """public() never carries the private key."""
        host = make_host("alice", "10.42.0.1")
        assert host.public().private_key == ""
        assert host.private_key != ""

    def test_dict_round_trip(self):
        """Dict form restores an equal host."""
        host = make_host("alice", "10.42.0.1", endpoint="alice.example.org:51820")
        host.last_seen = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert Host.from_dict(host.to_dict()) == host

    def test_dict_without_private(self):
        """Public dict has no private key field."""
        host = make_host("alice", "10.42.0.1")
        assert "private_key" not in host.to_dict(include_private=False)

    def test_timestamp_with_z_suffix(self):
        """Timestamps ending in Z are read as UTC."""
        host = Host.from_dict({
            "name": "alice",
            "address": "10.42.0.1",
            "last_seen": "2024-01-02T03:04:05Z",
        })
        assert host.last_seen == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_validate_outside_subnet(self):
        """Addresses outside the subnet are rejected."""
        host = make_host("alice", "192.168.0.1")
        with pytest.raises(ValidationError):
            host.validate(ipaddress.ip_network("10.42.0.0/24"))

    def test_local(self):
        """Local host gets a keypair and the given interfaces."""
        host = Host.local("10.42.0.9/24", name="me", listing=EMPTY_LISTING)
        assert host.address == "10.42.0.9"
        assert host.public_key and host.private_key
        assert host.interfaces == []


class TestMeshNetwork:
    """Tests for the registry."""

    def test_generate(self, network):
        """A new network holds only the local host at the top of the subnet."""
        assert len(network) == 0
        assert network.local_host.name == "coordinator"
        assert network.local_host.address == "10.42.0.254"
        assert len(network.network_id) == 32

    def test_add_and_lookup(self, network):
        """Added hosts can be found by name and address."""
        network.add_host(make_host("alice", "10.42.0.1"))

        assert len(network) == 1
        assert network.lookup_by_name("alice").address == "10.42.0.1"
        assert network.lookup_by_address("10.42.0.1").name == "alice"
        assert network.lookup_by_name("coordinator") is network.local_host
        assert network.lookup_by_name("bob") is None

    def test_name_conflict_leaves_registry_unchanged(self, network):
        """A duplicate name is rejected without side effects."""
        network.add_host(make_host("alice", "10.42.0.1"))
        before = network.to_dict()

        with pytest.raises(NameConflict) as exc:
            network.add_host(make_host("alice", "10.42.0.2"))

        assert str(exc.value) == 'host with name "alice" already exists'
        assert network.to_dict() == before

    def test_local_name_conflicts(self, network):
        """The local host's name is taken too."""
        with pytest.raises(NameConflict):
            network.add_host(make_host("coordinator", "10.42.0.1"))

    def test_address_conflict(self, network):
        """Two hosts cannot share an address."""
        network.add_host(make_host("alice", "10.42.0.1"))
        with pytest.raises(AddressConflict) as exc:
            network.add_host(make_host("bob", "10.42.0.1/24"))
        assert exc.value.holder == "alice"

        with pytest.raises(AddressConflict):
            network.add_host(make_host("bob", "10.42.0.254"))

    def test_remove_is_idempotent(self, network):
        """Removing an absent host does nothing."""
        network.add_host(make_host("alice", "10.42.0.1"))

        assert network.remove_host("alice").name == "alice"
        assert network.remove_host("alice") is None
        assert network.remove_host_by_address("10.42.0.1") is None
        assert len(network) == 0

    def test_local_host_is_not_removable(self, network):
        """Only remote hosts are removed."""
        assert network.remove_host("coordinator") is None
        assert network.local_host.name == "coordinator"

    def test_upsert_stamps_last_seen(self, network):
        """Connect upserts overwrite the entry and set last_seen."""
        now = datetime(2024, 5, 6, tzinfo=timezone.utc)
        stored = network.upsert_on_connect(make_host("alice", "10.42.0.1"), now=now)
        assert stored.last_seen == now

        refreshed = network.upsert_on_connect(
            make_host("alice", "10.42.0.1", endpoint="a:51820")
        )
        assert len(network) == 1
        assert refreshed.endpoint == "a:51820"
        assert refreshed.last_seen > now

    def test_upsert_rejects_name_elsewhere(self, network):
        """A name registered at another address cannot connect."""
        network.add_host(make_host("alice", "10.42.0.1"))
        with pytest.raises(NameConflict):
            network.upsert_on_connect(make_host("alice", "10.42.0.2"))

    def test_allocate_skips_taken(self, network):
        """Allocation avoids every registered address."""
        network.add_host(make_host("alice", "10.42.0.1"))
        assert network.allocate() == "10.42.0.2"
        assert network.allocate(highest=True) == "10.42.0.253"

    def test_snapshot_is_isolated(self, network):
        """Changing the network does not change an earlier snapshot."""
        snapshot = network.snapshot()
        network.add_host(make_host("alice", "10.42.0.1"))
        assert len(snapshot.remote_hosts) == 0

    def test_snapshot_order(self, network):
        """hosts() lists the local host first, then by address."""
        network.add_host(make_host("c", "10.42.0.30"))
        network.add_host(make_host("a", "10.42.0.4"))
        network.add_host(make_host("b", "10.42.0.10"))
        names = [h.name for h in network.snapshot().hosts()]
        assert names == ["coordinator", "a", "b", "c"]

    def test_dict_round_trip(self, network):
        """A network survives to_dict/from_dict."""
        network.add_host(make_host("alice", "10.42.0.1"))
        restored = MeshNetwork.from_dict(network.to_dict())

        assert restored.network_id == network.network_id
        assert restored.subnet == network.subnet
        assert restored.local_host == network.local_host
        assert restored.remote_hosts == network.remote_hosts

    def test_public_snapshot_dict(self, network):
        """Snapshot dicts leave private keys out by default."""
        network.add_host(make_host("alice", "10.42.0.1"))
        data = network.snapshot().to_dict()
        assert "private_key" not in data["local_host"]
        assert "private_key" not in data["remote_hosts"]["10.42.0.1"]
