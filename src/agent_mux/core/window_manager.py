"""Window operations inside the provider's tmux session."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Union

from agent_mux.adapters.tmux import make_target, sanitize
from agent_mux.constants import DEFAULT_ACTIVITY_TIMEOUT
from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.exceptions import CommandExecutionError, WindowNotFoundError
from agent_mux.models.window import WindowInfo

logger = logging.getLogger(__name__)


class TmuxWindowManager:
    """Creates, drives and destroys tmux windows.

    Commands that touch the same window index are serialized: tmux races
    between e.g. select-window and kill-window on one target otherwise.
    """

    def __init__(
        self,
        session_manager: TmuxSessionManager,
        mouse_mode: bool = True,
        silence_seconds: int = DEFAULT_ACTIVITY_TIMEOUT,
    ):
        self.session_manager = session_manager
        self.client = session_manager.client
        self.mouse_mode = mouse_mode
        self.silence_seconds = silence_seconds
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    @property
    def session_name(self) -> str:
        return self.session_manager.session_name

    def _target(self, window_index: int) -> str:
        return make_target(self.session_name, window_index)

    @asynccontextmanager
    async def _window_lock(self, window_index: int):
        # A lock lives only while some command holds or awaits it
        lock = self._locks.setdefault(window_index, asyncio.Lock())
        self._lock_users[window_index] = self._lock_users.get(window_index, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[window_index] -= 1
            if self._lock_users[window_index] == 0:
                del self._lock_users[window_index]
                del self._locks[window_index]

    async def _run_on_window(self, window_index: int, *args) -> str:
        """Run a command against one window, mapping a vanished target to WindowNotFoundError."""
        async with self._window_lock(window_index):
            try:
                return await self.client.run(*args)
            except CommandExecutionError as e:
                if e.missing_target:
                    raise WindowNotFoundError.from_error(e) from e
                raise

    async def create_window(self, name: str, cwd: str, env: Optional[Dict[str, str]] = None) -> int:
        """Create a detached window and return its index."""
        await self.session_manager.ensure_session()

        safe_name = sanitize(name)
        args = ["new-window", "-d", "-t", self.session_name, "-n", safe_name, "-c", cwd]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        args += ["-P", "-F", "#{window_index}"]

        output = await self.client.run(*args)
        try:
            window_index = int(output.strip())
        except ValueError as e:
            raise CommandExecutionError(args, 0, f"unexpected new-window output: {output!r}") from e

        await self._configure_window(window_index)
        await self.session_manager.cleanup_init_window()

        logger.info(f"Created tmux window: {safe_name} (index: {window_index})")
        return window_index

    async def _configure_window(self, window_index: int) -> None:
        target = self._target(window_index)
        try:
            await self.client.run("set-window-option", "-t", target, "monitor-activity", "on")
            await self.client.run("set-window-option", "-t", target, "monitor-silence", str(self.silence_seconds))
            await self.client.run("set-window-option", "-t", target, "mouse", "on" if self.mouse_mode else "off")
        except CommandExecutionError as e:
            logger.warning(f"Failed to configure window {window_index}: {e}")

    async def kill_window(self, window_index: int) -> None:
        """Kill a window; a window that is already gone counts as success."""
        try:
            await self._run_on_window(window_index, "kill-window", "-t", self._target(window_index))
            logger.info(f"Killed tmux window: {window_index}")
        except WindowNotFoundError:
            logger.debug(f"Window {window_index} already gone")

    async def send_keys(self, window_index: int, text: str, literal: bool = True) -> None:
        """Send keys; literal text is not interpreted as key names."""
        args = ["send-keys", "-t", self._target(window_index)]
        if literal:
            args.append("-l")
        args.append(text)
        await self._run_on_window(window_index, *args)

    async def send_command(self, window_index: int, command: str) -> None:
        """Send a line of text followed by Enter."""
        await self.send_keys(window_index, command, literal=True)
        await self.send_keys(window_index, "Enter", literal=False)

    async def capture_pane(self, window_index: int, include_history: bool = True) -> str:
        try:
            return await self.client.capture_pane(self._target(window_index), include_history)
        except CommandExecutionError as e:
            if e.missing_target:
                raise WindowNotFoundError.from_error(e) from e
            raise

    async def select_window(self, window_index: int) -> None:
        await self._run_on_window(window_index, "select-window", "-t", self._target(window_index))

    async def set_window_option(self, window_index: int, option: str, value: Union[str, int]) -> None:
        await self._run_on_window(
            window_index, "set-window-option", "-t", self._target(window_index), option, sanitize(str(value))
        )

    async def get_window_option(self, window_index: int, option: str) -> str:
        return await self._run_on_window(
            window_index, "show-window-options", "-t", self._target(window_index), "-v", option
        )

    async def rename_window(self, window_index: int, new_name: str) -> None:
        await self._run_on_window(
            window_index, "rename-window", "-t", self._target(window_index), sanitize(new_name)
        )

    async def list_windows(self) -> List[WindowInfo]:
        return await self.session_manager.list_windows()

    async def window_exists(self, window_index: int) -> bool:
        try:
            return any(w.index == window_index for w in await self.list_windows())
        except CommandExecutionError:
            return False

    async def find_window_by_name(self, name: str) -> Optional[WindowInfo]:
        return next((w for w in await self.list_windows() if w.name == name), None)
