"""Provider selection for the host application."""

import logging

from agent_mux.adapters.tmux import is_tmux_installed
from agent_mux.config import TerminalConfig
from agent_mux.exceptions import MultiplexerUnavailableError
from agent_mux.providers.tmux import TmuxTerminalProvider

logger = logging.getLogger(__name__)


async def create_terminal_provider(config: TerminalConfig) -> TmuxTerminalProvider:
    """Create and initialize the provider selected by ``config.provider``.

    Raises:
        MultiplexerUnavailableError: tmux is not installed. Hosts catch this
            and fall back to their own terminal backend.
    """
    for warning in config.validate_settings():
        logger.warning(f"Terminal configuration: {warning}")

    if config.provider not in ("tmux", "auto"):
        raise ValueError(f"Unknown provider type: {config.provider}")

    if not is_tmux_installed():
        if config.provider == "tmux":
            logger.error("tmux provider requested but tmux is not installed")
        else:
            logger.info("tmux not found, no multiplexer provider available")
        raise MultiplexerUnavailableError()

    provider = TmuxTerminalProvider(config)
    try:
        await provider.initialize()
    except Exception:
        provider.dispose(kill_session=False)
        raise

    logger.info(f"Created tmux terminal provider for session: {config.full_session_name}")
    return provider
