"""Command-line interface for httpin."""

import asyncio
import logging
import signal

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from httpin import __version__

console = Console()
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def main():
    """
    httpin - HTTP-in nodes that listen on their own port.
    """
    pass


async def _serve(flow, settings):
    from httpin.runtime import FlowRuntime

    runtime = FlowRuntime(settings)
    nodes = await runtime.deploy(flow)
    http_in = nodes[0]

    if http_in.server is None or not http_in.server.listening:
        console.print(f"[red]❌ Server did not start: {http_in.status_text or 'not configured'}[/red]")
        await runtime.stop()
        return 1

    route = http_in.route
    console.print(
        Panel.fit(
            f"""[bold cyan]🚀 httpin[/bold cyan]

[dim]Method:[/dim] {route.method.upper()}
[dim]URL:[/dim] {route.url}
[dim]Port:[/dim] {http_in.server.port}
[dim]Upload:[/dim] {route.upload}
[dim]Raw JSON:[/dim] {route.raw_json}

[dim]Press Ctrl+C to stop[/dim]""",
            title="🎯 Listener",
            border_style="cyan",
        )
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await stop.wait()
    console.print("\n[yellow]👋 Draining in-flight requests...[/yellow]")
    await runtime.stop()
    console.print("[green]✓ Server stopped gracefully[/green]")
    return 0


@main.command()
@click.option("--url", required=True, help="Path to serve, e.g. /hook or /users/:id")
@click.option(
    "--method",
    default="post",
    type=click.Choice(["get", "post", "put", "patch", "delete", "options"], case_sensitive=False),
    help="HTTP method to accept",
)
@click.option("--port", default=1880, help="Port for the dedicated listener (default: 1880)")
@click.option("--upload", is_flag=True, help="Accept multipart file uploads (POST only)")
@click.option("--raw-json", is_flag=True, help="Keep POST/PUT bodies as raw text")
@click.option("--status", "status_code", default=200, help="Status code of the echo reply")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def serve(url: str, method: str, port: int, upload: bool, raw_json: bool, status_code: int, log_level: str):
    """Serve one http-in route and echo each payload back."""
    from httpin.config import settings
    from httpin.logger import setup_global_logger

    setup_global_logger(log_level or settings.LOG_LEVEL)

    flow = [
        {
            "id": "http-in",
            "type": "http-in-custom-port",
            "url": url,
            "method": method.lower(),
            "port": port,
            "upload": upload,
            "rawJson": raw_json,
            "wires": ["debug", "http-response"],
        },
        {"id": "debug", "type": "debug", "property": "payload"},
        {"id": "http-response", "type": "http-response", "statusCode": status_code},
    ]
    raise SystemExit(asyncio.run(_serve(flow, settings)))


@main.command()
def nodes():
    """List the registered node types."""
    from httpin.runtime import NodeRegistry

    table = Table(title="Node types")
    table.add_column("Type", style="bold blue")
    table.add_column("Name")
    table.add_column("Description", style="dim")
    for node in NodeRegistry.list_nodes():
        table.add_row(node["id"], node.get("name") or "", node.get("description") or "")
    console.print(table)


if __name__ == "__main__":
    main()
