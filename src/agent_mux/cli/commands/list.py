"""List command for agent-mux CLI."""

import asyncio

import click

from agent_mux.cli.options import load_config, make_client, session_options
from agent_mux.constants import INIT_WINDOW_NAME
from agent_mux.core.naming import parse_window_name
from agent_mux.core.terminal import terminal_id_for


@click.command(name="list")
@session_options
def list_windows(workspace, session_name, socket_name):
    """List the terminals in the workspace session."""
    try:
        config = load_config(workspace, session_name, socket_name)
        windows = asyncio.run(make_client(config).list_windows(config.full_session_name))
        windows = [w for w in windows if w.name != INIT_WINDOW_NAME]

        if not windows:
            click.echo(f"No terminals in session {config.full_session_name}")
            return

        for window in windows:
            parsed = parse_window_name(window.name)
            click.echo(
                f"{window.index}\t{terminal_id_for(window.index)}\t{parsed.category.value}\t"
                f"{parsed.feature_key or '-'}\t{window.name}"
            )

    except Exception as e:
        raise click.ClickException(str(e))
