"""
Command-line interface for Overture.

Shows configuration and connects to a running agent's debugger stream.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from overture import __version__
from overture.core.config import get_settings, resolve_debugger_port
from overture.core.errors import ConfigurationError
from overture.pipeline.messages import AgentRunErrorEvent, ToolCallFailureEvent
from overture.remote.client import FeatureMessageRemoteClient
from overture.remote.config import ClientConnectionConfig
from overture.remote.tree import ExecutionNode, ExecutionTreeBuilder, NodeStatus
from overture.tracing.format import trace_string

app = typer.Typer(
    name="overture",
    help="Observability for agent runs - tracing, OpenTelemetry export and remote debugging",
    no_args_is_help=True,
)
debugger_app = typer.Typer(help="Remote debugger client", no_args_is_help=True)
app.add_typer(debugger_app, name="debugger")
console = Console()

STATUS_STYLES = {
    NodeStatus.RUNNING: "yellow",
    NodeStatus.OK: "green",
    NodeStatus.ERROR: "red",
    NodeStatus.UNFINISHED: "dim",
}


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]Overture[/bold cyan] v{__version__}")


@app.command()
def config():
    """Show current configuration."""
    try:
        settings = get_settings()
        port = resolve_debugger_port()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Overture Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Environment", settings.environment)
    table.add_row("Debug", str(settings.debug))
    table.add_row("Log Level", settings.observability.log_level)
    table.add_row("Log Format", settings.observability.log_format)
    table.add_row("Verbose Telemetry", str(settings.observability.verbose))
    table.add_row("Service", f"{settings.observability.service_name} {settings.observability.service_version}")
    table.add_row("Debugger Host", settings.debugger.host)
    table.add_row("Debugger Port", str(port))
    table.add_row("Wait For Debugger", str(settings.debugger.wait_connection))
    table.add_row("Replay Buffer", str(settings.debugger.replay_buffer_size))

    console.print(table)


def _client_config(host: Optional[str], port: Optional[int]) -> ClientConnectionConfig:
    try:
        return ClientConnectionConfig(
            host=host or get_settings().debugger.host,
            port=resolve_debugger_port(port),
        )
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _add_tree_node(parent: Tree, builder: ExecutionTreeBuilder, node: ExecutionNode) -> None:
    style = STATUS_STYLES[node.status]
    label = f"[bold]{node.segment.value}[/bold] {node.name} [{style}]{node.status.value}[/{style}]"
    if node.duration_ms is not None:
        label += f" [dim]{node.duration_ms}ms[/dim]"
    branch = parent.add(label)
    for child in builder.children(node):
        _add_tree_node(branch, builder, child)


def render_tree(builder: ExecutionTreeBuilder) -> Tree:
    """Render the reconstructed execution tree."""
    tree = Tree("[bold cyan]Execution[/bold cyan]")
    for root in builder.roots:
        _add_tree_node(tree, builder, root)
    return tree


@debugger_app.command("listen")
def listen(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Debugger host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Debugger port"),
    show_tree: bool = typer.Option(True, "--tree/--no-tree", help="Print the execution tree at the end"),
):
    """Connect to a running agent and print its events."""
    client_config = _client_config(host, port)
    builder = ExecutionTreeBuilder()

    console.print(Panel(
        f"Listening on [cyan]{client_config.events_url}[/cyan]",
        title="Overture Debugger",
    ))

    async def run():
        async with FeatureMessageRemoteClient(client_config) as client:
            async for message in client.events():
                builder.apply(message)
                style = "red" if isinstance(message, (AgentRunErrorEvent, ToolCallFailureEvent)) else "white"
                console.print(trace_string(message), style=style, markup=False, highlight=False)

    try:
        asyncio.run(run())
    except httpx.HTTPError as e:
        console.print(f"[red]Connection failed: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Disconnected[/dim]")

    if show_tree and builder.nodes:
        console.print(render_tree(builder))


@debugger_app.command("health")
def health(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Debugger host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Debugger port"),
):
    """Check that a debugger server is reachable."""
    client_config = _client_config(host, port)

    async def run():
        async with FeatureMessageRemoteClient(client_config) as client:
            return await client.health_check()

    try:
        status = asyncio.run(run())
    except httpx.HTTPError as e:
        console.print(f"[red]Debugger not reachable at {client_config.base_url}: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {client_config.base_url} "
        f"({status.get('subscribers', 0)} subscribers, {status.get('buffered_messages', 0)} buffered)"
    )


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
