"""
wgmesh CLI - Command line interface for the WireGuard mesh.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Config, DEFAULT_SUBNET, set_config
from .errors import MeshError, StorageError
from .mesh.host import Host
from .mesh.join import MeshJoin
from .mesh.store import NetworkStore, load_identity, save_identity
from .render import render_config, render_for

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        return loop.run_until_complete(coro)


def fail(message: str):
    console.print(f"[red]✗ {escape(message)}[/red]")
    sys.exit(1)


def parse_bind(bind: str) -> Tuple[str, int]:
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit():
        raise click.BadParameter(f"expected HOST:PORT, got {bind!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


def _store(ctx) -> NetworkStore:
    return NetworkStore(ctx.obj['config'].network_path)


def _load(ctx):
    """Load the network for an admin command; an unreadable file is an error."""
    store = _store(ctx)
    try:
        return store, store.load()
    except StorageError as e:
        fail(f"{e}\n  Run 'wgmesh init' to create a network.")


@click.group()
@click.option('-c', '--config', 'network_file', type=click.Path(dir_okay=False),
              help='Network file (defaults to ~/.wgmesh/network.yaml)')
@click.option('--data-dir', type=click.Path(file_okay=False), help='Data directory')
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx, network_file: Optional[str], data_dir: Optional[str], verbose: bool):
    """Generate configuration to run a WireGuard mesh network."""
    ctx.ensure_object(dict)
    setup_logging(verbose)

    config = Config.load(Path(data_dir) if data_dir else None)
    if network_file:
        config.network_file = network_file
    set_config(config)
    ctx.obj['config'] = config


@main.command()
@click.option('--subnet', '-s', default=None, help=f'Mesh subnet (default {DEFAULT_SUBNET})')
@click.option('--name', '-n', help='Local host name (defaults to hostname)')
@click.option('--force', '-f', is_flag=True, help='Replace an existing network')
@click.pass_context
def init(ctx, subnet: Optional[str], name: Optional[str], force: bool):
    """Create a new network with this machine as coordinator."""
    from .mesh.network import MeshNetwork

    config = ctx.obj['config']
    store = _store(ctx)

    if store.exists() and not force:
        console.print(f"[yellow]⚠️  A network already exists at {store.path}[/yellow]")
        if not click.confirm("Replace it? All registered hosts will be lost."):
            return

    try:
        network = MeshNetwork.generate(subnet or config.default_subnet, name=name)
        store.save(network)
    except MeshError as e:
        fail(str(e))

    console.print("\n[bold green]✓ Network created[/bold green]\n")
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Network ID", f"[cyan]{network.network_id}[/cyan]")
    table.add_row("Subnet", str(network.subnet))
    table.add_row("Local host", f"{network.local_host.name} ({network.local_host.address})")
    table.add_row("Public key", network.local_host.public_key)
    table.add_row("File", str(store.path))
    console.print(table)
    console.print()


@main.command('add-host')
@click.argument('name')
@click.option('--wireguard-address', '-a', 'address', help='Mesh address (allocated if omitted)')
@click.option('--public-key', '-u', default='', help='WireGuard public key')
@click.option('--private-key', '-k', default='', help='WireGuard private key')
@click.option('--interface', '-i', 'interfaces', multiple=True, help='Extra address/prefix routed to this host')
@click.option('--endpoint', '-e', help='host:port WireGuard endpoint')
@click.pass_context
def add_host(ctx, name: str, address: Optional[str], public_key: str, private_key: str,
             interfaces: Tuple[str, ...], endpoint: Optional[str]):
    """Add a host to the network."""
    from .mesh.interfaces import InterfaceRecord

    store, network = _load(ctx)
    try:
        host = Host(
            name=name,
            address=address or network.allocate(),
            public_key=public_key,
            private_key=private_key,
            endpoint=endpoint,
            interfaces=[
                InterfaceRecord(name=f"declared{i}", mac="", state="UNKNOWN", addresses=[cidr])
                for i, cidr in enumerate(interfaces)
            ],
        )
        host = network.add_host(host)
        store.save(network)
    except MeshError as e:
        fail(str(e))

    console.print(f"[green]✓ Added {host.name} at {host.address}[/green]")
    if not host.public_key:
        console.print("[yellow]  No public key yet; render will fail until one is set.[/yellow]")


@main.command('remove-host')
@click.argument('name')
@click.pass_context
def remove_host(ctx, name: str):
    """Remove a host from the network."""
    store, network = _load(ctx)
    removed = network.remove_host(name)
    try:
        store.save(network)
    except MeshError as e:
        fail(str(e))

    if removed:
        console.print(f"[green]✓ Removed {name} from network[/green]")
    else:
        console.print(f"[dim]{name} is not in the network[/dim]")


@main.command()
@click.pass_context
def hosts(ctx):
    """List the hosts in the network."""
    _, network = _load(ctx)

    table = Table(title=f"Network {network.network_id} ({network.subnet})")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Public key", style="dim")
    table.add_column("Endpoint")
    table.add_column("Last seen")

    snapshot = network.snapshot()
    for host in snapshot.hosts():
        label = f"{host.name} [dim](local)[/dim]" if host is snapshot.local_host else host.name
        table.add_row(
            label,
            host.address,
            host.public_key[:12] + "…" if host.public_key else "[red]missing[/red]",
            host.endpoint or "-",
            host.last_seen.strftime("%Y-%m-%d %H:%M:%S") if host.last_seen else "-",
        )

    console.print(table)


@main.command()
@click.option('--host', '-H', 'host_name', help='Render for this host (defaults to the local host)')
@click.option('--coordinator', '-C', help='Render from a coordinator using the joined identity')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write to file instead of stdout')
@click.option('--include-subnets', is_flag=True, help='Route declared interface subnets too')
@click.pass_context
def render(ctx, host_name: Optional[str], coordinator: Optional[str],
           output: Optional[str], include_subnets: bool):
    """Render the WireGuard configuration for a host."""
    config = ctx.obj['config']

    try:
        if coordinator:
            identity = load_identity(config.identity_path)
            if identity is None:
                fail("Not joined. Run 'wgmesh join' first.")
            network = run_async(_fetch_info(coordinator))
            host = identity
        else:
            _, network = _load(ctx)
            host = network.lookup_by_name(host_name) if host_name else network.local_host
            if host is None:
                fail(f'No host named "{host_name}"')

        peers = render_for(network, host.name, include_interface_subnets=include_subnets)
        text = render_config(host, peers, network.subnet, listen_port=config.listen_port)
    except MeshError as e:
        fail(str(e))

    if output:
        path = Path(output)
        path.write_text(text)
        path.chmod(0o600)
        console.print(f"[green]✓ Wrote {path}[/green]")
    else:
        click.echo(text, nl=False)


async def _fetch_info(url: str):
    async with MeshJoin(url) as client:
        return await client.info()


@main.command()
@click.option('--bind', '-b', default=None, help='Address to bind (default 0.0.0.0:64001)')
@click.pass_context
def serve(ctx, bind: Optional[str]):
    """Start the coordinator server."""
    from .api.server import run_server

    config = ctx.obj['config']
    host, port = parse_bind(bind) if bind else (config.server.host, config.server.port)

    console.print(f"\n[bold blue]Starting wgmesh coordinator[/bold blue]")
    console.print(f"   Network file: {config.network_path}")
    console.print(f"   Listening on: http://{host}:{port}")
    console.print(f"   Press Ctrl+C to stop\n")

    run_server(host=host, port=port, config=config)


@main.command()
@click.argument('url')
@click.option('--name', '-n', help='Host name (defaults to hostname)')
@click.option('--endpoint', '-e', help='host:port other hosts can reach this one at')
@click.pass_context
def join(ctx, url: str, name: Optional[str], endpoint: Optional[str]):
    """Join the mesh coordinated at URL."""
    config = ctx.obj['config']

    async def do_join():
        async with MeshJoin(url) as client:
            return await client.join(identity, name=name, endpoint=endpoint)

    try:
        identity = load_identity(config.identity_path)
        if identity is not None and endpoint:
            identity.endpoint = endpoint
        host = run_async(do_join())
        save_identity(host, config.identity_path)
    except MeshError as e:
        fail(str(e))

    console.print(f"\n[bold green]✓ Joined mesh as {host.name}[/bold green]")
    console.print(f"   Address: [cyan]{host.address}[/cyan]")
    console.print(f"   Identity: {config.identity_path}")
    console.print(f"\n[dim]Next: wgmesh render -C {url} -o /etc/wireguard/wg0.conf[/dim]\n")


@main.command()
@click.argument('url')
@click.pass_context
def leave(ctx, url: str):
    """Leave the mesh coordinated at URL."""
    config = ctx.obj['config']
    identity = load_identity(config.identity_path)
    if identity is None:
        fail("Not joined.")

    async def do_leave():
        async with MeshJoin(url) as client:
            return await client.disconnect(identity.address)

    try:
        known = run_async(do_leave())
    except MeshError as e:
        fail(str(e))

    if known:
        console.print(f"[green]✓ {identity.name} left the mesh[/green]")
    else:
        console.print(f"[dim]{identity.address} was not registered[/dim]")


@main.command()
@click.argument('url')
@click.option('--limit', '-l', type=int, help='Show at most this many events')
def events(url: str, limit: Optional[int]):
    """Show recent connect/disconnect events of the coordinator at URL."""

    async def fetch():
        async with MeshJoin(url) as client:
            return await client.events(limit)

    try:
        items = run_async(fetch())
    except MeshError as e:
        fail(str(e))

    table = Table(title="Events (most recent first)")
    table.add_column("Time", style="dim")
    table.add_column("Type")
    table.add_column("Host", style="cyan")
    table.add_column("Address")
    for event in items:
        color = "green" if event["type"] == "connect" else "yellow"
        table.add_row(
            event["created_at"],
            f"[{color}]{event['type']}[/{color}]",
            event["host"]["name"],
            event["host"]["address"],
        )
    console.print(table)


if __name__ == '__main__':
    main()
