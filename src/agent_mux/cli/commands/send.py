"""Send command for agent-mux CLI."""

import asyncio

import click

from agent_mux.cli.options import load_config, make_client, session_options
from agent_mux.core.terminal import terminal_id_for
from agent_mux.providers.factory import create_terminal_provider
from agent_mux.utils.terminal import wait_until_active, wait_until_idle


async def _send(config, index, text, enter, wait_idle):
    if not await make_client(config).session_exists(config.full_session_name):
        raise click.ClickException(f"Session not found: {config.full_session_name}")

    provider = await create_terminal_provider(config)
    try:
        terminal = provider.get_terminal_by_id(terminal_id_for(index))
        if terminal is None:
            raise click.ClickException(f"No terminal at index {index}")

        await terminal.send_text(text, add_new_line=enter)
        if wait_idle is None:
            return True

        # Short output never becomes active; only wait for idle once activity is sustained
        startup = config.active_delay + 2 * config.monitoring_interval
        await wait_until_active(terminal, timeout=min(startup, wait_idle), polling_interval=config.monitoring_interval)
        return await wait_until_idle(terminal, timeout=wait_idle, polling_interval=config.monitoring_interval)
    finally:
        provider.dispose(kill_session=False)


@click.command()
@click.argument("index", type=int)
@click.argument("text")
@click.option("--no-enter", is_flag=True, help="Do not press Enter after the text")
@click.option("--wait-idle", type=float, default=None, help="Wait up to SECONDS for the terminal to go idle")
@session_options
def send(index, text, no_enter, wait_idle, workspace, session_name, socket_name):
    """Send TEXT to terminal INDEX."""
    try:
        config = load_config(workspace, session_name, socket_name)
        idle = asyncio.run(_send(config, index, text, not no_enter, wait_idle))
        if wait_idle is not None and not idle:
            click.echo(f"Terminal {index} still active after {wait_idle}s")

    except click.ClickException:
        raise
    except Exception as e:
        raise click.ClickException(str(e))
