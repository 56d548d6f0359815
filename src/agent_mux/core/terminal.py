"""Terminal handle backed by one tmux window."""

import logging
from typing import TYPE_CHECKING, Optional

from agent_mux.constants import TMUX_BACKEND
from agent_mux.core.activity_monitor import TmuxActivityMonitor
from agent_mux.core.window_manager import TmuxWindowManager
from agent_mux.exceptions import CommandExecutionError
from agent_mux.models.terminal import (
    ActivityState,
    ActivityStatus,
    BackendKind,
    Capability,
    TerminalCategory,
)
from agent_mux.providers.base import BaseTerminal

if TYPE_CHECKING:
    from agent_mux.providers.tmux import TmuxTerminalProvider

logger = logging.getLogger(__name__)


def terminal_id_for(window_index: int) -> str:
    return f"{TMUX_BACKEND}-{window_index}"


class TmuxTerminal(BaseTerminal):
    """A tmux window wrapped as a terminal handle."""

    backend = BackendKind.TMUX
    capabilities = frozenset(
        {Capability.ACTIVITY_MONITORING, Capability.BUFFER_READING, Capability.IDLE_DETECTION}
    )

    def __init__(
        self,
        name: str,
        window_index: int,
        feature_key: Optional[str],
        category: TerminalCategory,
        window_manager: TmuxWindowManager,
        activity_monitor: TmuxActivityMonitor,
        provider: "TmuxTerminalProvider",
        is_base: bool = False,
    ):
        super().__init__(name, feature_key, category, is_base)
        self.window_index = window_index
        self._window_manager = window_manager
        self._activity_monitor = activity_monitor
        self._provider = provider
        self._disposed = False

    @property
    def id(self) -> str:
        return terminal_id_for(self.window_index)

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def show(self, preserve_focus: bool = False) -> None:
        """Select this window and ask the host to surface it."""
        if self._disposed:
            return
        await self._window_manager.select_window(self.window_index)
        self._provider.set_active_terminal(self, preserve_focus)

    async def send_text(self, text: str, add_new_line: bool = True) -> None:
        if self._disposed:
            return
        if add_new_line:
            await self._window_manager.send_command(self.window_index, text)
        else:
            await self._window_manager.send_keys(self.window_index, text, literal=True)

    async def send_command(self, command: str) -> None:
        await self.send_text(command, add_new_line=True)

    async def dispose(self) -> None:
        """Hand focus to a sibling, unregister, then kill the window."""
        if self._disposed:
            return
        self._disposed = True

        next_terminal = self._provider.get_next_terminal_for_feature(self) or self._provider.get_global_base_terminal()
        if next_terminal is not None and next_terminal is not self:
            try:
                await self._window_manager.select_window(next_terminal.window_index)
            except CommandExecutionError as e:
                logger.error(f"Failed to select next terminal before disposing {self.name}: {e}")

        # The index may be reused by tmux as soon as the window dies
        self._provider.unregister_terminal(self)

        try:
            await self._window_manager.kill_window(self.window_index)
        except CommandExecutionError as e:
            logger.error(f"Failed to dispose terminal {self.name}: {e}")

    async def get_buffer(self, include_history: bool = True) -> str:
        if self._disposed:
            return ""
        return await self._window_manager.capture_pane(self.window_index, include_history=include_history)

    def _state(self) -> Optional[ActivityState]:
        if self._disposed:
            return None
        return self._activity_monitor.get_activity_state(self.window_index)

    def is_active(self) -> bool:
        state = self._state()
        return state.is_active if state else False

    def is_idle(self) -> bool:
        state = self._state()
        return state.is_idle if state else False

    def get_activity_state(self) -> Optional[ActivityStatus]:
        state = self._state()
        if state is None:
            return None
        return ActivityStatus.ACTIVE if state.is_active else ActivityStatus.IDLE
