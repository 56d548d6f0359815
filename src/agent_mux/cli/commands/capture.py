"""Capture command for agent-mux CLI."""

import asyncio

import click

from agent_mux.adapters.tmux import make_target
from agent_mux.cli.options import load_config, make_client, session_options


@click.command()
@click.argument("index", type=int)
@click.option("--no-history", is_flag=True, help="Only the visible pane, without scrollback")
@session_options
def capture(index, no_history, workspace, session_name, socket_name):
    """Print the contents of terminal INDEX."""
    try:
        config = load_config(workspace, session_name, socket_name)
        target = make_target(config.full_session_name, index)
        output = asyncio.run(make_client(config).capture_pane(target, include_history=not no_history))
        click.echo(output)

    except Exception as e:
        raise click.ClickException(str(e))
