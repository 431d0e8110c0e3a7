"""
Tests for the command line interface.
"""

import pytest
import yaml
from click.testing import CliRunner

from wgmesh.cli import main, parse_bind
from wgmesh.config import reset_config
from wgmesh.mesh.keys import generate_keypair


@pytest.fixture
def runner():
    yield CliRunner()
    reset_config()


@pytest.fixture
def invoke(runner, tmp_path):
    network_file = tmp_path / "network.yaml"

    def run(*args, input=None):
        return runner.invoke(
            main,
            ["--data-dir", str(tmp_path), "-c", str(network_file), *args],
            input=input,
        )

    run.network_file = network_file
    return run


def read_network(invoke):
    return yaml.safe_load(invoke.network_file.read_text())


class TestCommands:
    """Tests for the registry commands."""

    def test_init(self, invoke):
        """init writes a new network file."""
        result = invoke("init", "--subnet", "10.42.0.0/24", "--name", "hub")
        assert result.exit_code == 0, result.output
        assert "Network created" in result.output

        data = read_network(invoke)
        assert data["subnet"] == "10.42.0.0/24"
        assert data["local_host"]["name"] == "hub"
        assert data["local_host"]["address"] == "10.42.0.254"

    def test_init_keeps_existing(self, invoke):
        """Declining the prompt leaves the network alone."""
        invoke("init", "--name", "hub")
        network_id = read_network(invoke)["network_id"]

        result = invoke("init", "--name", "other", input="n\n")
        assert result.exit_code == 0
        assert read_network(invoke)["network_id"] == network_id

        invoke("init", "--name", "other", "--force")
        assert read_network(invoke)["network_id"] != network_id

    def test_add_and_remove_host(self, invoke):
        """Hosts can be added with an allocated address and removed."""
        invoke("init", "--name", "hub")
        _, public_key = generate_keypair()

        result = invoke("add-host", "alice", "-u", public_key, "-e", "alice.example.org:51820")
        assert result.exit_code == 0, result.output
        assert "10.42.0.1" in result.output
        alice = read_network(invoke)["remote_hosts"]["10.42.0.1"]
        assert alice["public_key"] == public_key
        assert alice["endpoint"] == "alice.example.org:51820"

        result = invoke("hosts")
        assert result.exit_code == 0
        assert "alice" in result.output
        assert "hub" in result.output

        result = invoke("remove-host", "alice")
        assert result.exit_code == 0
        assert read_network(invoke)["remote_hosts"] == {}

        result = invoke("remove-host", "alice")
        assert result.exit_code == 0
        assert "not in the network" in result.output

    def test_add_host_conflict(self, invoke):
        """Duplicate names fail with exit code 1."""
        invoke("init", "--name", "hub")
        invoke("add-host", "alice")
        result = invoke("add-host", "alice")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_add_host_fixed_address(self, invoke):
        """An explicit address is used as given."""
        invoke("init", "--name", "hub")
        result = invoke("add-host", "alice", "-a", "10.42.0.77/24")
        assert result.exit_code == 0, result.output
        assert "10.42.0.77" in read_network(invoke)["remote_hosts"]


class TestUnreadableNetwork:
    """Admin commands never replace a network they cannot read."""

    def test_missing_file(self, invoke):
        """Without a network file, add-host fails and creates nothing."""
        result = invoke("add-host", "alice")
        assert result.exit_code == 1
        assert "wgmesh init" in result.output
        assert not invoke.network_file.exists()

    @pytest.mark.parametrize("command", [
        ("add-host", "alice"),
        ("remove-host", "alice"),
        ("hosts",),
        ("render",),
    ])
    def test_corrupt_file_left_alone(self, invoke, command):
        """A corrupt network file fails the command and stays untouched."""
        invoke.network_file.write_text("{{{ not yaml")

        result = invoke(*command)
        assert result.exit_code == 1
        assert "unable to read" in result.output
        assert invoke.network_file.read_text() == "{{{ not yaml"


class TestRender:
    """Tests for render."""

    def test_render_local(self, invoke):
        """The local host's configuration lists every remote peer."""
        invoke("init", "--name", "hub")
        _, public_key = generate_keypair()
        invoke("add-host", "alice", "-u", public_key)

        result = invoke("render")
        assert result.exit_code == 0, result.output
        assert result.output.startswith("# hub\n[Interface]\n")
        assert "Address = 10.42.0.254/24" in result.output
        assert "ListenPort = 51820" in result.output
        assert f"PublicKey = {public_key}" in result.output

    def test_render_to_file(self, invoke, tmp_path):
        """-o writes the configuration to a file."""
        invoke("init", "--name", "hub")
        output = tmp_path / "wg0.conf"

        result = invoke("render", "-o", str(output))
        assert result.exit_code == 0, result.output
        assert output.read_text().startswith("# hub\n")

    def test_render_for_remote(self, invoke):
        """Rendering for a remote host includes the local host as a peer."""
        invoke("init", "--name", "hub")
        _, public_key = generate_keypair()
        invoke("add-host", "alice", "-u", public_key)

        result = invoke("render", "--host", "alice")
        assert result.exit_code == 0, result.output
        assert "# hub\n[Peer]" in result.output
        assert "PrivateKey" not in result.output

    def test_render_incomplete(self, invoke):
        """A host without a key stops rendering and is named."""
        invoke("init", "--name", "hub")
        invoke("add-host", "keyless")

        result = invoke("render")
        assert result.exit_code == 1
        assert "keyless" in result.output


class TestParseBind:
    """Tests for --bind parsing."""

    def test_host_and_port(self):
        assert parse_bind("127.0.0.1:8000") == ("127.0.0.1", 8000)
        assert parse_bind(":64001") == ("0.0.0.0", 64001)
        assert parse_bind("[::]:64001") == ("::", 64001)

    def test_invalid(self):
        import click

        with pytest.raises(click.BadParameter):
            parse_bind("localhost")
