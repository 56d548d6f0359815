"""Info command for agent-mux CLI."""

import asyncio

import click

from agent_mux.cli.options import load_config, make_client, session_options
from agent_mux.core.session_manager import TmuxSessionManager


async def _collect(config):
    client = make_client(config)
    session_manager = TmuxSessionManager(config.full_session_name, client)
    version = await client.get_tmux_version()
    exists = await session_manager.session_exists() if version else False
    window_count = await session_manager.get_window_count() if exists else 0
    return version, exists, window_count


@click.command()
@session_options
def info(workspace, session_name, socket_name):
    """Display information about the workspace session."""
    try:
        config = load_config(workspace, session_name, socket_name)
        version, exists, window_count = asyncio.run(_collect(config))

        click.echo(f"tmux: {version or 'not installed'}")
        click.echo(f"Session: {config.full_session_name}")
        click.echo(f"Session exists: {'yes' if exists else 'no'}")
        click.echo(f"Windows: {window_count}")
        for warning in config.validate_settings():
            click.echo(f"Warning: {warning}")

    except Exception as e:
        raise click.ClickException(str(e))
