#!/usr/bin/env python3
"""
ChartBridge CLI - Command-line interface for operating a ChartBridge server

Usage:
    chartbridge --help
    chartbridge validate-config bridge.yaml
    chartbridge serve --port 8080
    chartbridge health
    chartbridge logs status
    chartbridge logs enable
    chartbridge logs prune
    chartbridge signal AppLoaded true

validate-config and serve work locally; every other command talks to a
running server, which owns the preference store and the active log file.
"""

import os
import sys
import json

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from chartbridge.configurator import load_bridge_config
from chartbridge.errors import InitializationError

# =============================================================================
# CONFIGURATION
# =============================================================================

console = Console()

DEFAULT_URL = os.environ.get("CHARTBRIDGE_URL", "http://localhost:8080")


def get_client(url: str = None) -> httpx.Client:
    """Get configured HTTP client."""
    return httpx.Client(base_url=url or DEFAULT_URL, timeout=30.0)


def handle_error(response: httpx.Response):
    """Print a server error response and exit."""
    try:
        data = response.json()
    except ValueError:
        console.print(f"[red]HTTP {response.status_code}[/red]: {response.text}")
        sys.exit(1)

    err = data.get("error") if isinstance(data, dict) else None
    if err:
        console.print(Panel(
            f"[red bold]{err.get('code', 'ERROR')}[/red bold]\n\n{err.get('message', 'Unknown error')}",
            title="Error",
            border_style="red",
        ))
    else:
        console.print(f"[red]HTTP {response.status_code}[/red]: {data}")
    sys.exit(1)


def _request(ctx, method: str, path: str, **kwargs) -> dict:
    with get_client(ctx.obj.get("url")) as client:
        try:
            response = client.request(method, path, **kwargs)
        except httpx.ConnectError:
            console.print("[red]✗ Cannot connect to server[/red]")
            console.print(f"[dim]URL: {client.base_url}[/dim]")
            sys.exit(1)

    if response.status_code >= 400:
        handle_error(response)
    return response.json()


# =============================================================================
# MAIN CLI GROUP
# =============================================================================

@click.group()
@click.option("--url", envvar="CHARTBRIDGE_URL", help="ChartBridge server URL")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.version_option(version="1.0.0", prog_name="chartbridge")
@click.pass_context
def cli(ctx, url, output_json):
    """
    ChartBridge CLI - Serve and operate a chart data bridge.

    \b
    Environment Variables:
        CHARTBRIDGE_URL          - Server URL (default: http://localhost:8080)
        CHARTBRIDGE_CONFIG_PATH  - Bridge YAML used by `serve`
    """
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["output_json"] = output_json


# =============================================================================
# LOCAL COMMANDS
# =============================================================================

@cli.command("validate-config")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def validate_config(path):
    """Validate a bridge configuration file."""
    try:
        config = load_bridge_config(path)
    except InitializationError as e:
        console.print(f"[red]✗[/red] {e.message}")
        for key, value in e.details.items():
            console.print(f"  [dim]{key}: {value}[/dim]")
        sys.exit(1)

    console.print(f"\n[bold]Bridge Configuration: {path}[/bold]\n")

    table = Table(title="Downsampling Levels", show_header=True)
    table.add_column("Duration (s)", style="cyan", justify="right")
    table.add_column("Points", style="green", justify="right")
    for level in config.cache.downsamplingLevels:
        table.add_row(str(level.durationSeconds), str(level.numOfPoints))
    console.print(table)

    schema = config.schema
    console.print(f"  Table: [cyan]{schema.table}[/cyan]  date key: [cyan]{schema.dateKeyColumn}[/cyan]")
    for name, column_type in schema.columns.items():
        console.print(f"    • {name} [{column_type.value}]")

    console.print(f"\n[green]✓[/green] Configuration is valid ({len(schema.columns)} columns)")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=8080, type=int, help="Port to listen on")
def serve(host, port):
    """Run the HTTP surface with the in-memory engine."""
    import uvicorn

    from chartbridge.main import create_app

    try:
        app = create_app()
    except InitializationError as e:
        console.print(f"[red]✗ Bridge initialization failed:[/red] {e.message}")
        sys.exit(1)

    uvicorn.run(app, host=host, port=port)


# =============================================================================
# SERVER COMMANDS
# =============================================================================

@cli.command()
@click.pass_context
def health(ctx):
    """Check server health and engine status."""
    data = _request(ctx, "GET", "/v1/health")

    if ctx.obj.get("output_json"):
        console.print(Syntax(json.dumps(data, indent=2), "json"))
        return

    status = data.get("status", "unknown")
    status_color = "green" if status == "ok" else "red"
    console.print(Panel(
        f"[{status_color} bold]{status.upper()}[/{status_color} bold]",
        title="Server Status",
        expand=False
    ))

    table = Table(title="Engine", show_header=True)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for key, value in data.get("engine", {}).items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command()
@click.argument("name")
@click.argument("values", default="")
@click.pass_context
def signal(ctx, name, values):
    """Emit a named signal to the host application."""
    _request(ctx, "POST", "/v1/signals", json={"name": name, "values": values})
    console.print(f"[green]✓[/green] Signal '{name}' emitted")


@cli.group()
def logs():
    """Manage performance logging."""
    pass


def _print_logging(ctx, data: dict):
    if ctx.obj.get("output_json"):
        console.print(Syntax(json.dumps(data, indent=2), "json"))
        return

    if data.get("enabled"):
        console.print(f"[green]●[/green] Logging enabled, active file: {data.get('activeLog') or '(none)'}")
    else:
        console.print("[dim]○ Logging disabled[/dim]")


@logs.command("status")
@click.pass_context
def logs_status(ctx):
    """Show whether performance logging is enabled."""
    _print_logging(ctx, _request(ctx, "GET", "/v1/logging"))


@logs.command("enable")
@click.pass_context
def logs_enable(ctx):
    """Enable logging (starts a new log file)."""
    _print_logging(ctx, _request(ctx, "PUT", "/v1/logging", json={"enabled": True}))


@logs.command("disable")
@click.pass_context
def logs_disable(ctx):
    """Disable logging (ends the current log file)."""
    _print_logging(ctx, _request(ctx, "PUT", "/v1/logging", json={"enabled": False}))


@logs.command("prune")
@click.pass_context
def logs_prune(ctx):
    """Delete every log file except the active one."""
    data = _request(ctx, "DELETE", "/v1/logs")
    removed = data.get("removed", [])

    for name in removed:
        console.print(f"  [red]-[/red] {name}")
    console.print(f"[green]✓[/green] Removed {len(removed)} log file(s)")


# =============================================================================
# ENTRY POINT
# =============================================================================

def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
