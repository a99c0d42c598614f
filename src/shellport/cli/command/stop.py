"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    read_pid,
    pid_alive,
)

console = Console()

STOP_TIMEOUT = 10.0


@click.command(name="stop", help="Stop Shellport server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
def stop(path: str = None, force: bool = False):
    """Stop Shellport server

    Sends SIGTERM and waits for the server to exit. tmux sessions survive the
    stop and are picked up again by the next start.

    Args:
        path: Instance directory path (default: ~/.shellport)
        force: Force kill if graceful shutdown fails
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if not is_running(instance_path):
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    pid = read_pid(instance_path)
    pid_file = get_pid_file(instance_path)

    # 1. Graceful shutdown
    console.print(f"Stopping Shellport (pid {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        console.print("[green]✓ Shellport stopped[/green]")
        return

    # 2. Wait for exit
    deadline = time.monotonic() + STOP_TIMEOUT
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            break
        time.sleep(0.2)

    # 3. Escalate
    if pid_alive(pid):
        if not force:
            console.print(
                f"[red]Error: Server did not exit within {STOP_TIMEOUT:g}s[/red]"
            )
            console.print("[yellow]Retry with --force to kill it[/yellow]")
            raise click.Abort()
        console.print("[yellow]Graceful shutdown timed out, killing...[/yellow]")
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    # 4. Clean up PID file
    pid_file.unlink(missing_ok=True)
    console.print("[green]✓ Shellport stopped[/green]")
