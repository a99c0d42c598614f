"""Sessions command implementation"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from ..util import get_instance_path

console = Console()


@click.command(name="sessions", help="List tmux sessions on the Shellport tmux server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option("--all", "show_all", is_flag=True, help="Include sessions not created by Shellport")
def sessions(path: str = None, show_all: bool = False):
    """List tmux sessions

    Reads tmux directly, so it works whether or not the server is running.

    Args:
        path: Instance directory path (default: ~/.shellport)
        show_all: Include sessions whose names do not follow the broker convention
    """
    from ...backend.config import load_settings
    from ...backend.multiplexer.controller import TmuxController

    instance_path = get_instance_path(path)
    settings = load_settings(instance_path)
    controller = TmuxController(settings.multiplexer)

    found = asyncio.run(controller.list_sessions())
    if not show_all:
        found = [s for s in found if controller.is_managed(s.name)]

    if not found:
        console.print("[yellow]No sessions[/yellow]")
        return

    table = Table(title=f"tmux sessions (socket: {settings.multiplexer.socket_name or 'default'})")
    table.add_column("Name", style="cyan")
    table.add_column("Windows", justify="right")
    table.add_column("Created")
    table.add_column("Attached", justify="right")

    for s in found:
        table.add_row(
            s.name,
            str(s.windows),
            s.created.strftime("%Y-%m-%d %H:%M:%S") if s.created else "-",
            "yes" if s.attached else "no",
        )

    console.print(table)
