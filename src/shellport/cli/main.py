"""Shellport CLI entry point"""

import click

from .command.init import init
from .command.start import start
from .command.stop import stop
from .command.sessions import sessions


@click.group(
    name="shellport",
    help="Shellport - Persistent browser terminals backed by tmux",
)
def main():
    """Main CLI entry point"""
    pass


# Register commands
main.add_command(init)
main.add_command(start)
main.add_command(stop)
main.add_command(sessions)


if __name__ == "__main__":
    main()
