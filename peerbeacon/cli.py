#!/usr/bin/env python3
"""
peerbeacon CLI

Command-line harness for trying discovery on a real LAN.

Usage:
    peerbeacon server KY4OLB-SDR1    # Announce as an sdr_server
    peerbeacon client WF1            # Announce as a waterfall
    peerbeacon announce ID -s TYPE   # Announce anything
    peerbeacon listen                # Just listen
    peerbeacon scan --timeout 5      # Listen for a while, print what was seen
    peerbeacon local-ip              # Show the address we would advertise

Run `server` on one machine and `client` on another to watch them find
each other.
"""

import json
import logging
import time
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import load_config
from .discovery import ServiceInfo, resolve_local_ip
from .discovery.protocol import MAX_PORT
from .errors import DiscoveryError
from .node import DiscoveryNode

console = Console()

# How often long-running commands print the service table (seconds)
STATUS_INTERVAL = 10


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def on_service(info: ServiceInfo, is_bye: bool):
    """Print join/leave events."""
    if is_bye:
        console.print(f"\n[red]*** SERVICE LEFT:[/red] {info.service} '{info.id}'\n")
        return

    line = f"\n[green]*** SERVICE FOUND:[/green] {info}"
    if info.data_port > 0:
        line += f" data:{info.data_port}"
    if info.caps:
        line += f" caps:{info.caps}"
    console.print(line + "\n")


def services_table(services: List[ServiceInfo], title: str = "Known Services") -> Table:
    table = Table(title=f"{title} ({len(services)})")
    table.add_column("ID", style="cyan")
    table.add_column("Service", style="magenta")
    table.add_column("Address", style="yellow")
    table.add_column("Data Port", justify="right")
    table.add_column("Caps")
    table.add_column("Last Seen", justify="right", style="dim")

    now = time.time()
    for s in services:
        table.add_row(
            s.id,
            s.service,
            f"{s.ip}:{s.ctrl_port}",
            str(s.data_port) if s.data_port else "-",
            s.caps or "-",
            f"{now - s.last_seen:.0f}s ago",
        )
    return table


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--port', type=click.IntRange(0, MAX_PORT), default=None,
              help='Discovery UDP port (default 5400)')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='JSON config file')
@click.pass_context
def cli(ctx, verbose, port, config_path):
    """peerbeacon - UDP broadcast service discovery."""
    try:
        config = load_config(config_path)
        if port is not None:
            config.udp_port = port
            config.validate()
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='configuration')

    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


def run_node(config, identity: Optional[dict] = None):
    """Listen (and optionally announce) until Ctrl+C."""
    node = DiscoveryNode(config)
    try:
        node.initialize()
    except DiscoveryError as e:
        console.print(f"[red]Failed to initialize discovery: {e}[/red]")
        raise SystemExit(1)

    try:
        node.listen(on_service)

        if identity:
            node.announce(**identity)
            console.print(Panel.fit(
                f"[bold green]Announcing[/bold green]\n\n"
                f"ID: [cyan]{identity['instance_id']}[/cyan]\n"
                f"Service: [magenta]{identity['service']}[/magenta]\n"
                f"Address: [yellow]{node.local_ip}:{identity['ctrl_port']}[/yellow]\n"
                f"UDP Port: [yellow]{node.port}[/yellow]",
                title="Local Service"
            ))
        else:
            console.print(f"[dim]Listen-only mode on UDP port {node.port}[/dim]")

        console.print("[dim]Press Ctrl+C to exit...[/dim]\n")

        tick = 0
        while True:
            time.sleep(1)
            tick += 1
            if tick >= STATUS_INTERVAL:
                tick = 0
                services = node.get_services()
                if services:
                    console.print(services_table(services))

    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except ValueError as e:
        console.print(f"[red]Invalid identity: {e}[/red]")
    finally:
        node.shutdown()


@cli.command()
@click.argument('instance_id')
@click.option('--service', '-s', required=True, help='Service type (e.g. sdr_server)')
@click.option('--ctrl-port', default=0, help='Control port (0 = unspecified)')
@click.option('--data-port', default=0, help='Data port (0 = none)')
@click.option('--caps', default='', help='Capabilities string')
@click.pass_context
def announce(ctx, instance_id, service, ctrl_port, data_port, caps):
    """Announce a service and listen for others."""
    run_node(ctx.obj['config'], {
        'instance_id': instance_id,
        'service': service,
        'ctrl_port': ctrl_port,
        'data_port': data_port,
        'caps': caps,
    })


@cli.command()
@click.argument('instance_id', default='TEST1')
@click.pass_context
def server(ctx, instance_id):
    """Announce as an sdr_server on ports 4535/4536."""
    run_node(ctx.obj['config'], {
        'instance_id': instance_id,
        'service': 'sdr_server',
        'ctrl_port': 4535,
        'data_port': 4536,
        'caps': 'rsp2pro,2mhz',
    })


@cli.command()
@click.argument('instance_id', default='TEST1')
@click.pass_context
def client(ctx, instance_id):
    """Announce as a waterfall and look for servers."""
    run_node(ctx.obj['config'], {
        'instance_id': instance_id,
        'service': 'waterfall',
        'ctrl_port': 0,
        'data_port': 0,
        'caps': '',
    })


@cli.command()
@click.pass_context
def listen(ctx):
    """Listen without announcing."""
    run_node(ctx.obj['config'])


@cli.command()
@click.option('--timeout', '-t', default=5.0, help='Seconds to listen')
@click.option('--service', '-s', default=None, help='Only show this service type')
@click.option('--json', 'as_json', is_flag=True, help='Print JSON instead of a table')
@click.pass_context
def scan(ctx, timeout, service, as_json):
    """Listen for a while and print the services seen."""
    config = ctx.obj['config']

    try:
        with DiscoveryNode(config) as node:
            node.listen()
            if not as_json:
                console.print(f"[dim]Scanning UDP port {node.port} for {timeout}s...[/dim]")
            time.sleep(timeout)
            services = node.get_services()
    except DiscoveryError as e:
        console.print(f"[red]Scan failed: {e}[/red]")
        raise SystemExit(1)

    if service:
        services = [s for s in services if s.service == service]

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in services], indent=2))
    elif not services:
        console.print("[yellow]No services found[/yellow]")
    else:
        console.print(services_table(services, title="Discovered Services"))


@cli.command('local-ip')
def local_ip():
    """Show the address announcements would carry."""
    click.echo(resolve_local_ip())


@cli.command('config')
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    click.echo(json.dumps(ctx.obj['config'].to_dict(), indent=2))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
