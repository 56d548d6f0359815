"""Watch command for agent-mux CLI."""

import asyncio

import click

from agent_mux.cli.options import load_config, session_options
from agent_mux.providers.factory import create_terminal_provider
from agent_mux.utils.logging import setup_logging


def _describe(terminal) -> str:
    return f"{terminal.id} ({terminal.name})"


async def _watch(config, duration):
    provider = await create_terminal_provider(config)
    try:
        mode = "polling" if provider.polling else "control mode"
        click.echo(f"Watching {config.full_session_name} via {mode}, {len(provider.get_active_terminals())} terminal(s)")

        provider.on_did_close_terminal(lambda t: click.echo(f"closed: {_describe(t)}"))
        provider.on_did_detect_activity(lambda t: click.echo(f"active: {_describe(t)}"))
        provider.on_did_detect_idle(lambda t: click.echo(f"idle: {_describe(t)}"))

        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        # Leave the terminals running for the next host
        provider.dispose(kill_session=False)


@click.command()
@click.option("--control-mode", is_flag=True, help="Use tmux control mode instead of polling")
@click.option("--duration", type=float, default=None, help="Stop after SECONDS (default: until interrupted)")
@session_options
def watch(control_mode, duration, workspace, session_name, socket_name):
    """Print terminal close, activity and idle events."""
    try:
        setup_logging()
        overrides = {"use_control_mode": True} if control_mode else {}
        config = load_config(workspace, session_name, socket_name, **overrides)
        asyncio.run(_watch(config, duration))

    except KeyboardInterrupt:
        click.echo("Stopped watching")
    except Exception as e:
        raise click.ClickException(str(e))
