"""Lifecycle of the single tmux session addressed by a provider."""

import logging
from typing import List

from agent_mux.adapters.tmux import TmuxClient, make_target
from agent_mux.constants import INIT_WINDOW_NAME
from agent_mux.exceptions import CommandExecutionError, SessionCreationError
from agent_mux.models.window import WindowInfo

logger = logging.getLogger(__name__)


class TmuxSessionManager:
    """Creates, inspects and destroys one tmux session."""

    def __init__(self, session_name: str, client: TmuxClient):
        self.session_name = session_name
        self.client = client
        self._initialized = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Refuse to create the session from now on. Existing windows are left alone."""
        self._closed = True

    async def initialize(self) -> None:
        """Create the session if needed; subsequent calls are no-ops."""
        if self._initialized:
            return
        await self.ensure_session()
        self._initialized = True

    async def ensure_session(self) -> None:
        """Ensure the tmux session exists. Safe to call before every window operation."""
        if not await self.session_exists():
            await self.create_session()

    async def session_exists(self) -> bool:
        return await self.client.session_exists(self.session_name)

    async def create_session(self) -> None:
        """Create a detached session seeded with the placeholder window.

        tmux does not allow a session without windows, so the session starts
        with an "init" window that is removed once a real window exists.
        """
        if self._closed:
            raise SessionCreationError(f"Session manager for {self.session_name} is closed")
        try:
            await self.client.run("new-session", "-d", "-s", self.session_name, "-n", INIT_WINDOW_NAME)
        except CommandExecutionError as e:
            raise SessionCreationError(
                f"Failed to create tmux session {self.session_name}",
                context={"stderr": e.stderr},
            ) from e

        await self._configure_session()
        logger.info(f"Created tmux session: {self.session_name}")

    async def _configure_session(self) -> None:
        try:
            await self.client.run("set-option", "-t", self.session_name, "monitor-activity", "on")
            # The host renders its own activity indicators
            await self.client.run("set-option", "-t", self.session_name, "visual-activity", "off")
            await self.client.run("set-window-option", "-t", self.session_name, "aggressive-resize", "on")
        except CommandExecutionError as e:
            logger.warning(f"Failed to configure tmux session {self.session_name}: {e}")

    async def kill_session(self) -> None:
        """Kill the session and every window in it."""
        try:
            if await self.session_exists():
                await self.client.run("kill-session", "-t", self.session_name)
                logger.info(f"Killed tmux session: {self.session_name}")
        except CommandExecutionError as e:
            logger.error(f"Failed to kill tmux session {self.session_name}: {e}")
        self._initialized = False

    def kill_session_sync(self) -> None:
        """Kill the session, blocking until tmux has done so.

        A missing session or server counts as success. The manager is closed
        first, so a creation already in flight cannot bring the session back.
        """
        self.close()
        try:
            if self.client.has_session_sync(self.session_name):
                self.client.run_sync("kill-session", "-t", self.session_name)
                logger.info(f"Killed tmux session (sync): {self.session_name}")
        except CommandExecutionError as e:
            if not e.missing_target:
                logger.error(f"Failed to kill tmux session (sync) {self.session_name}: {e}")
        except Exception as e:
            logger.error(f"Failed to kill tmux session (sync) {self.session_name}: {e}")
        self._initialized = False

    async def list_windows(self) -> List[WindowInfo]:
        return await self.client.list_windows(self.session_name)

    async def has_windows(self) -> bool:
        return await self.get_window_count() > 0

    async def get_window_count(self) -> int:
        """Number of windows, not counting the placeholder."""
        windows = await self.list_windows()
        return len([w for w in windows if w.name != INIT_WINDOW_NAME])

    async def cleanup_init_window(self) -> None:
        """Kill the placeholder window once another window exists."""
        try:
            windows = await self.list_windows()
            init_window = next((w for w in windows if w.name == INIT_WINDOW_NAME), None)
            others = [w for w in windows if w.name != INIT_WINDOW_NAME]
            if init_window and others:
                await self.client.run("kill-window", "-t", make_target(self.session_name, init_window.index))
                logger.info("Cleaned up initial tmux window")
        except CommandExecutionError as e:
            logger.warning(f"Failed to clean up init window: {e}")

    async def dispose(self) -> None:
        await self.kill_session()
