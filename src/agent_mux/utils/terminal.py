"""Terminal utility functions."""

import asyncio
import time

from agent_mux.providers.base import BaseTerminal


async def wait_until_idle(
    terminal: BaseTerminal,
    timeout: float = 30.0,
    polling_interval: float = 1.0,
) -> bool:
    """
    Wait until the terminal reports idle or timeout.

    Args:
        terminal: Handle whose activity is monitored
        timeout: Maximum time to wait in seconds
        polling_interval: Time between checks in seconds

    Returns:
        True if the terminal went idle, False on timeout
    """
    start_time = time.time()

    while time.time() - start_time < timeout:
        if terminal.is_idle():
            return True
        await asyncio.sleep(polling_interval)

    return False


async def wait_until_active(
    terminal: BaseTerminal,
    timeout: float = 30.0,
    polling_interval: float = 1.0,
) -> bool:
    """Wait until the terminal shows sustained activity or timeout."""
    start_time = time.time()

    while time.time() - start_time < timeout:
        if terminal.is_active():
            return True
        await asyncio.sleep(polling_interval)

    return False
