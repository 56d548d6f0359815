"""Main CLI entry point for agent-mux."""

import click

from agent_mux.cli.commands.capture import capture
from agent_mux.cli.commands.info import info
from agent_mux.cli.commands.kill import kill
from agent_mux.cli.commands.list import list_windows
from agent_mux.cli.commands.send import send
from agent_mux.cli.commands.watch import watch


@click.group()
def cli():
    """agent-mux: tmux-backed terminals for background agents."""
    pass


# Register commands
cli.add_command(info)
cli.add_command(list_windows)
cli.add_command(capture)
cli.add_command(send)
cli.add_command(watch)
cli.add_command(kill)


if __name__ == "__main__":
    cli()
