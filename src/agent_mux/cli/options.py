"""Options shared by every command that addresses a session."""

import click

from agent_mux.adapters.tmux import TmuxClient
from agent_mux.config import TerminalConfig


def session_options(func):
    """Add --workspace, --session-name and --socket-name."""
    func = click.option("--socket-name", default=None, help="tmux socket name (tmux -L)")(func)
    func = click.option("--session-name", default=None, help="Session name prefix (default: agentmux)")(func)
    func = click.option("--workspace", default=None, help="Workspace name (default: AGENT_MUX_WORKSPACE_NAME or 'default')")(func)
    return func


def load_config(workspace, session_name, socket_name, **overrides) -> TerminalConfig:
    """Build the config from AGENT_MUX_* variables plus command-line overrides."""
    return TerminalConfig.from_env(
        workspace_name=workspace,
        session_name=session_name,
        socket_name=socket_name,
        **overrides,
    )


def make_client(config: TerminalConfig) -> TmuxClient:
    return TmuxClient(socket_name=config.socket_name)
