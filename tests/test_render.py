"""
Tests for WireGuard configuration rendering.
"""

import pytest

from wgmesh.errors import IncompleteHost, ValidationError
from wgmesh.mesh.host import Host
from wgmesh.mesh.interfaces import InterfaceRecord
from wgmesh.mesh.keys import generate_keypair
from wgmesh.mesh.network import MeshNetwork
from wgmesh.render import peer_block, render_config, render_for, render_peers


def make_host(name, address, **kwargs):
    private_key, public_key = generate_keypair()
    return Host(name=name, address=address, public_key=public_key, private_key=private_key, **kwargs)


@pytest.fixture
def network():
    network = MeshNetwork.generate("10.42.0.0/24", name="hub", listing="")
    network.add_host(make_host("charlie", "10.42.0.30"))
    network.add_host(make_host("alice", "10.42.0.4", endpoint="alice.example.org:51820"))
    network.add_host(make_host("bob", "10.42.0.10"))
    return network


class TestPeerBlock:
    """Tests for single peer blocks."""

    def test_host_route(self):
        """A host is routed as a single address."""
        block = peer_block(make_host("alice", "10.42.0.4"))
        assert block.allowed_ips == ("10.42.0.4/32",)
        assert block.endpoint is None

    def test_ipv6_host_route(self):
        """IPv6 hosts get a /128."""
        block = peer_block(make_host("v6", "fd00::4"))
        assert block.allowed_ips == ("fd00::4/128",)

    def test_interface_subnets(self):
        """Declared interface networks are added, loopback and link-local are not."""
        host = make_host("alice", "10.42.0.4", interfaces=[
            InterfaceRecord(name="lo", mac="00:00:00:00:00:00", state="UNKNOWN",
                            addresses=["127.0.0.1/8"]),
            InterfaceRecord(name="eth0", mac="52:54:00:12:34:56", state="UP",
                            addresses=["192.168.1.20/24", "fe80::1/64"]),
        ])
        assert peer_block(host).allowed_ips == ("10.42.0.4/32",)
        block = peer_block(host, include_interface_subnets=True)
        assert block.allowed_ips == ("10.42.0.4/32", "192.168.1.0/24")

    def test_interface_subnets_skip_garbage(self):
        """Stored addresses that do not parse add no route."""
        host = make_host("alice", "10.42.0.4", interfaces=[
            InterfaceRecord(name="eth0", mac="", state="UP",
                            addresses=["not-an-ip", "10.8.0.5/16"]),
        ])
        block = peer_block(host, include_interface_subnets=True)
        assert block.allowed_ips == ("10.8.0.0/16", "10.42.0.4/32")

    def test_missing_key(self):
        """A host without a public key cannot be rendered."""
        with pytest.raises(IncompleteHost) as exc:
            peer_block(Host(name="keyless", address="10.42.0.9"))
        assert exc.value.host_name == "keyless"

    def test_lines(self):
        """Block text follows wg-quick syntax."""
        host = make_host("alice", "10.42.0.4", endpoint="alice.example.org:51820")
        assert peer_block(host).to_lines() == [
            "# alice",
            "[Peer]",
            f"PublicKey = {host.public_key}",
            "AllowedIPs = 10.42.0.4/32",
            "Endpoint = alice.example.org:51820",
            "PersistentKeepalive = 25",
        ]


class TestRenderPeers:
    """Tests for rendering whole networks."""

    def test_ordered_by_address(self, network):
        """Blocks are ordered by mesh address, not insertion."""
        names = [b.name for b in render_peers(network)]
        assert names == ["alice", "bob", "charlie"]

    def test_deterministic(self, network):
        """Rendering the same snapshot twice gives the same output."""
        assert render_peers(network.snapshot()) == render_peers(network.snapshot())

    def test_incomplete_host_named(self, network):
        """The keyless host is named in the error."""
        network.add_host(Host(name="keyless", address="10.42.0.50"))
        with pytest.raises(IncompleteHost) as exc:
            render_peers(network)
        assert exc.value.host_name == "keyless"
        assert "keyless" in str(exc.value)

    def test_render_for(self, network):
        """A member sees everyone but itself, the local host included."""
        names = [b.name for b in render_for(network, "bob")]
        assert names == ["alice", "charlie", "hub"]

    def test_render_for_unknown(self, network):
        """Rendering for a stranger fails."""
        with pytest.raises(ValidationError):
            render_for(network, "mallory")


class TestRenderConfig:
    """Tests for full configuration files."""

    def test_local_config(self, network):
        """The local host gets its private key and listen port."""
        local = network.local_host
        text = render_config(local, render_peers(network), network.subnet, listen_port=51820)
        lines = text.splitlines()

        assert lines[:5] == [
            "# hub",
            "[Interface]",
            "Address = 10.42.0.254/24",
            f"PrivateKey = {local.private_key}",
            "ListenPort = 51820",
        ]
        assert text.count("[Peer]") == 3
        assert text.endswith("PersistentKeepalive = 25\n")

    def test_no_private_key(self, network):
        """Hosts without a known private key get no PrivateKey line."""
        bob = network.lookup_by_name("bob").public()
        text = render_config(bob, render_for(network, "bob"), network.subnet)
        assert "PrivateKey" not in text
        assert "ListenPort" not in text
