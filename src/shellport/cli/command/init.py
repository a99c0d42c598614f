"""Init command implementation"""

import json
from datetime import datetime

import click
from rich.console import Console

from ..util import get_instance_path, is_initialized, INSTANCE_FLAG

console = Console()

CONFIG_TEMPLATE = """[server]
host = "0.0.0.0"
port = 3011
ws_path = "/ws/terminal"
cors_origins = []

[multiplexer]
binary = "tmux"
socket_name = "shellport"
session_prefix = "shell"
term = "xterm-256color"
history_limit = 50000
mouse = true

[session]
ping_interval = 25
grace_period = 300
max_sessions = 64
max_connections = 128
max_pending_frames = 2048
replay_lines = 1000

[exec]
shell = "/bin/bash"
timeout = 5
max_concurrent = 4

[logging]
level = "INFO"
directory = "logs"
rotate_when = "midnight"
backup_count = 30
console = true

# startup_hook = "package.module:callable"
"""


@click.command(name="init", help="Initialize a new Shellport instance")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def init(path: str = None):
    """Initialize a new Shellport instance

    Args:
        path: Instance directory path (default: ~/.shellport)
    """
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(
            f"[red]Error: Already initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(
            f"[red]Error: Directory is not empty: {instance_path}[/red]"
        )
        raise click.Abort()

    # 1. Create directory structure
    console.print(f"Initializing Shellport instance at {instance_path}")
    console.print("")

    instance_path.mkdir(parents=True, exist_ok=True)
    (instance_path / "logs").mkdir(exist_ok=True)

    # 2. Generate config.toml with default settings
    console.print("Generating configuration...")
    config_file = instance_path / "config.toml"
    config_file.write_text(CONFIG_TEMPLATE)

    # 3. Create flag file
    flag_data = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
    }
    with open(instance_path / INSTANCE_FLAG, "w") as f:
        json.dump(flag_data, f, indent=2)

    # 4. Display success message
    console.print("")
    console.print("[green]✓ Shellport instance initialized successfully![/green]")
    console.print("")
    console.print(f"Location: {instance_path}")
    console.print("")
    console.print("Next steps:")
    console.print("  1. (Optional) Edit configuration:")
    console.print(f"     {config_file}")
    console.print("")
    console.print("  2. Start the server:")
    if path:
        console.print(f"     shellport start {path}")
    else:
        console.print("     shellport start")
    console.print("")
    console.print("Logs: {}/logs/".format(instance_path))
