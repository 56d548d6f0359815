"""Kill command for agent-mux CLI."""

import click

from agent_mux.cli.options import load_config, make_client, session_options
from agent_mux.core.session_manager import TmuxSessionManager


@click.command()
@session_options
def kill(workspace, session_name, socket_name):
    """Kill the workspace session and every terminal in it."""
    try:
        config = load_config(workspace, session_name, socket_name)
        client = make_client(config)

        if not client.has_session_sync(config.full_session_name):
            click.echo(f"Session not found: {config.full_session_name}")
            return

        TmuxSessionManager(config.full_session_name, client).kill_session_sync()
        click.echo(f"Killed session: {config.full_session_name}")

    except Exception as e:
        raise click.ClickException(str(e))
