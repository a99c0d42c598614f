"""Start command implementation"""

import os

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
)

console = Console()


@click.command(name="start", help="Start Shellport server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option("--host", default=None, help="Override [server] host")
@click.option("--port", type=int, default=None, help="Override [server] port")
def start(path: str = None, host: str = None, port: int = None):
    """Start Shellport server in the foreground

    Args:
        path: Instance directory path (default: ~/.shellport)
        host: Bind address overriding the configured one
        port: Port overriding the configured one
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        console.print(
            f"[yellow]Run: shellport init {path if path else ''}[/yellow]"
        )
        raise click.Abort()

    if is_running(instance_path):
        console.print("[red]Error: Instance already running[/red]")
        console.print(f"[yellow]Location: {instance_path}[/yellow]")
        raise click.Abort()

    from pydantic import ValidationError
    from ...backend.config import load_settings

    try:
        settings = load_settings(instance_path)
    except ValidationError as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise click.Abort()

    host = host or settings.server.host
    port = port or settings.server.port

    console.print(f"[cyan]Starting Shellport from {instance_path}[/cyan]")
    console.print(f"[cyan]Server: http://{host}:{port}[/cyan]")
    console.print(f"[cyan]Terminal: ws://{host}:{port}{settings.server.ws_path}[/cyan]")
    console.print("")

    import uvicorn
    from ...backend.app import create_app

    app = create_app(settings, instance_path=instance_path)

    # Save PID (current process)
    pid_file = get_pid_file(instance_path)
    pid_file.write_text(str(os.getpid()))

    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_config=None,
        )
    finally:
        pid_file.unlink(missing_ok=True)
