"""Tmux-backed terminal provider.

Every terminal is a window in one tmux session per workspace. The in-memory
registry is a cache of tmux's own state: it is rebuilt from window names on
startup and reconciled against ``list-windows`` every ``cleanup_interval``
seconds, which is how windows closed outside the provider are discovered.

Provider Responsibilities:
- Compose the session, window, activity and (optional) control-mode managers
- Own the handle registry (window index -> handle, terminal id -> index)
- Reconnect to windows that survived a restart of the host process
- Recreate base windows that were closed externally
- Tear everything down synchronously on dispose
"""

import asyncio
import logging
from typing import Coroutine, Dict, List, NamedTuple, Optional, Set

from agent_mux.adapters.tmux import TmuxClient, is_tmux_installed, sanitize
from agent_mux.config import TerminalConfig
from agent_mux.constants import INIT_WINDOW_NAME
from agent_mux.core.activity_monitor import TmuxActivityMonitor
from agent_mux.core.control_mode import TmuxControlModeManager
from agent_mux.core.events import EventEmitter
from agent_mux.core.naming import console_window_name, global_base_window_name, parse_window_name
from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.core.terminal import TmuxTerminal
from agent_mux.core.window_manager import TmuxWindowManager
from agent_mux.exceptions import AgentMuxError, MultiplexerUnavailableError, ProviderDisposedError
from agent_mux.models.terminal import TerminalCategory, TerminalOptions
from agent_mux.providers.base import BaseTerminalProvider

logger = logging.getLogger(__name__)


class ShowRequest(NamedTuple):
    """Asks the host to surface the tmux session on a given terminal."""

    terminal: TmuxTerminal
    preserve_focus: bool


class TmuxTerminalProvider(BaseTerminalProvider):
    """Terminal provider that renders terminals as tmux windows."""

    def __init__(self, config: TerminalConfig, client: Optional[TmuxClient] = None):
        if client is None:
            if not is_tmux_installed():
                raise MultiplexerUnavailableError()
            client = TmuxClient(socket_name=config.socket_name)

        self.config = config
        self.client = client
        self.session_manager = TmuxSessionManager(config.full_session_name, client)
        self.window_manager = TmuxWindowManager(
            self.session_manager,
            mouse_mode=config.mouse_mode,
            silence_seconds=config.activity_timeout,
        )
        self.activity_monitor = TmuxActivityMonitor(
            self.window_manager,
            activity_timeout=config.activity_timeout,
            active_delay=config.active_delay,
        )
        self.control_mode: Optional[TmuxControlModeManager] = (
            TmuxControlModeManager(self.session_manager) if config.use_control_mode else None
        )

        self._terminals: Dict[int, TmuxTerminal] = {}
        self._terminal_ids: Dict[str, int] = {}
        self._feature_paths: Dict[str, str] = {}
        self._active_terminal: Optional[TmuxTerminal] = None
        self._global_base_lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._activity_check: Optional[asyncio.Task] = None
        self._polling = False
        self._disposed = False

        self.on_did_close_terminal: EventEmitter[TmuxTerminal] = EventEmitter("terminal-closed")
        self.on_did_change_active_terminal: EventEmitter[Optional[TmuxTerminal]] = EventEmitter("active-terminal-changed")
        self.on_did_detect_activity: EventEmitter[TmuxTerminal] = EventEmitter("activity-detected")
        self.on_did_detect_idle: EventEmitter[TmuxTerminal] = EventEmitter("idle-detected")
        self.on_did_request_show: EventEmitter[ShowRequest] = EventEmitter("show-requested")

        self.activity_monitor.on_activity(self._forward_activity)
        self.activity_monitor.on_idle(self._forward_idle)

    @property
    def session_name(self) -> str:
        return self.session_manager.session_name

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def polling(self) -> bool:
        """True when activity is detected by polling rather than control mode."""
        return self._polling

    @property
    def active_terminal(self) -> Optional[TmuxTerminal]:
        return self._active_terminal

    async def initialize(self) -> None:
        """Attach to (or create) the session and start monitoring."""
        if self._disposed:
            raise ProviderDisposedError("initialize")

        await self.session_manager.initialize()
        await self._reconnect_existing_windows()

        if self.control_mode is not None:
            try:
                await self._start_control_mode()
            except AgentMuxError as e:
                logger.warning(f"Failed to start control mode, falling back to polling: {e}")
                self._start_polling_monitoring()
        else:
            self._start_polling_monitoring()

        self._start_periodic_cleanup()

    async def _reconnect_existing_windows(self) -> None:
        """Register handles for windows left over from a previous run, without touching them."""
        try:
            windows = await self.session_manager.list_windows()
        except AgentMuxError as e:
            logger.error(f"Failed to reconnect to existing windows: {e}")
            return

        real_windows = [w for w in windows if w.name != INIT_WINDOW_NAME and w.index not in self._terminals]
        if not real_windows:
            logger.info("No existing windows to reconnect")
            return

        logger.info(f"Reconnecting to {len(real_windows)} existing window(s)")
        for window in real_windows:
            parsed = parse_window_name(window.name)
            terminal = self._make_terminal(
                window.name, window.index, parsed.feature_key, parsed.category, parsed.is_global_base
            )
            self._register(terminal)
            logger.info(f"Reconnected to window: {window.name} (index: {window.index})")

    async def _start_control_mode(self) -> None:
        control_mode = self.control_mode
        # tmux window ids (@N) are not window indexes, so closes go through reconciliation
        # and output triggers a full activity check rather than a per-pane mapping
        control_mode.on_output(self._request_activity_check)
        control_mode.on_window_close(lambda event: self._spawn(self.cleanup_closed_windows()))
        control_mode.on_error(self._on_control_mode_error)
        await control_mode.start()
        # Silence produces no output, so idle edges still need a periodic tick
        self.activity_monitor.start(self.config.monitoring_interval)
        self._polling = False
        logger.info("Using control mode for monitoring")

    def _request_activity_check(self, event=None) -> None:
        # Output arrives in bursts; one check in flight is enough
        if self._activity_check is not None and not self._activity_check.done():
            return
        self._activity_check = self._spawn(self.activity_monitor.check_activity())

    def _on_control_mode_error(self, error: AgentMuxError) -> None:
        if self._disposed:
            return
        logger.warning(f"Control mode error, falling back to polling: {error}")
        if self.control_mode is not None:
            self.control_mode.stop()
        self._start_polling_monitoring()

    def _start_polling_monitoring(self) -> None:
        if self._polling or self._disposed:
            return
        self.activity_monitor.start(self.config.monitoring_interval)
        self._polling = True
        logger.info("Using polling-based monitoring")

    def _start_periodic_cleanup(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            try:
                await self.cleanup_closed_windows()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error during periodic cleanup: {e}")

    def _spawn(self, coro: Coroutine) -> Optional[asyncio.Task]:
        if self._disposed:
            coro.close()
            return None
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background terminal task failed: {task.exception()}")

    def _forward_activity(self, window_index: int) -> None:
        terminal = self._terminals.get(window_index)
        if terminal is not None:
            self.on_did_detect_activity.fire(terminal)

    def _forward_idle(self, window_index: int) -> None:
        terminal = self._terminals.get(window_index)
        if terminal is not None:
            self.on_did_detect_idle.fire(terminal)

    def _make_terminal(
        self,
        name: str,
        window_index: int,
        feature_key: Optional[str],
        category: TerminalCategory,
        is_base: bool,
    ) -> TmuxTerminal:
        return TmuxTerminal(
            name,
            window_index,
            feature_key,
            category,
            self.window_manager,
            self.activity_monitor,
            self,
            is_base=is_base,
        )

    def _register(self, terminal: TmuxTerminal) -> None:
        self._terminals[terminal.window_index] = terminal
        self._terminal_ids[terminal.id] = terminal.window_index

    def _remove(self, terminal: TmuxTerminal) -> bool:
        """Drop a handle from every index; False if it was not registered."""
        if self._terminals.get(terminal.window_index) is not terminal:
            return False
        del self._terminals[terminal.window_index]
        self._terminal_ids.pop(terminal.id, None)
        if self._active_terminal is terminal:
            self._active_terminal = None
            self.on_did_change_active_terminal.fire(None)
        return True

    def unregister_terminal(self, terminal: TmuxTerminal) -> None:
        """Remove a handle that is being disposed, announce its closure and recreate a base."""
        if self._remove(terminal):
            self.on_did_close_terminal.fire(terminal)
            self._schedule_base_recreation(terminal)

    def set_active_terminal(self, terminal: TmuxTerminal, preserve_focus: bool = False) -> None:
        if self._disposed or terminal.disposed:
            return
        self._active_terminal = terminal
        self.on_did_change_active_terminal.fire(terminal)
        self.on_did_request_show.fire(ShowRequest(terminal, preserve_focus))

    async def create_terminal(self, options: TerminalOptions) -> TmuxTerminal:
        """Create a terminal window, or return the existing global base terminal."""
        if self._disposed:
            raise ProviderDisposedError()

        parsed = parse_window_name(options.name)
        feature_key = options.feature_key if options.feature_key is not None else parsed.feature_key
        category = options.category if "category" in options.model_fields_set else parsed.category

        if options.is_base and feature_key is None:
            async with self._global_base_lock:
                existing = self.get_global_base_terminal()
                if existing is not None:
                    logger.info("Global base terminal already exists, reusing it")
                    return existing
                terminal = await self._create_window_terminal(options, feature_key, category)
        else:
            terminal = await self._create_window_terminal(options, feature_key, category)

        if options.message:
            await terminal.send_text(f"# {options.message}", add_new_line=False)
        if options.show:
            await terminal.show(options.preserve_focus)
        return terminal

    async def _create_window_terminal(
        self, options: TerminalOptions, feature_key: Optional[str], category: TerminalCategory
    ) -> TmuxTerminal:
        cwd = options.cwd or self.config.workspace_path
        try:
            window_index = await self.window_manager.create_window(options.name, cwd, options.env)
        except AgentMuxError as e:
            if self._disposed:
                raise ProviderDisposedError() from e
            raise
        if self._disposed:
            await self._kill_orphan_window(window_index)
            raise ProviderDisposedError()

        stale = self._terminals.get(window_index)
        if stale is not None:
            # tmux reused the index of a window that died before reconciliation noticed
            logger.info(f"Evicting stale terminal {stale.name} from reused index {window_index}")
            self._remove(stale)
            self.on_did_close_terminal.fire(stale)
            self._schedule_base_recreation(stale)

        terminal = self._make_terminal(sanitize(options.name), window_index, feature_key, category, options.is_base)
        self._register(terminal)
        if feature_key and options.cwd:
            self._feature_paths[feature_key] = options.cwd
        return terminal

    async def _kill_orphan_window(self, window_index: int) -> None:
        # Created after dispose, so no handle will ever own it
        try:
            await self.window_manager.kill_window(window_index)
        except AgentMuxError as e:
            logger.error(f"Failed to kill window {window_index} created during dispose: {e}")

    def get_active_terminals(self) -> List[TmuxTerminal]:
        return [t for t in self._terminals.values() if not t.disposed]

    def get_terminals_by_feature(self, feature_key: str) -> List[TmuxTerminal]:
        """Terminals of one feature, oldest (lowest index) first."""
        terminals = [t for t in self.get_active_terminals() if t.feature_key == feature_key]
        return sorted(terminals, key=lambda t: t.window_index)

    def get_next_terminal_for_feature(self, current: TmuxTerminal) -> Optional[TmuxTerminal]:
        """Pick the terminal to show when ``current`` closes: the feature's base, else its oldest."""
        if not current.feature_key:
            return None
        siblings = [t for t in self.get_terminals_by_feature(current.feature_key) if t is not current]
        if not siblings:
            return None
        return next((t for t in siblings if t.is_base), siblings[0])

    def get_terminal_by_id(self, terminal_id: str) -> Optional[TmuxTerminal]:
        window_index = self._terminal_ids.get(terminal_id)
        if window_index is None:
            return None
        return self._terminals.get(window_index)

    def get_global_base_terminal(self) -> Optional[TmuxTerminal]:
        return next(
            (t for t in self._terminals.values() if t.is_base and not t.feature_key and not t.disposed),
            None,
        )

    def forget_feature(self, feature_key: str) -> None:
        """Stop recreating the base terminal of a feature that no longer exists."""
        self._feature_paths.pop(feature_key, None)

    def attach_command(self) -> List[str]:
        """argv a host can run to display the session."""
        return self.client.build_argv(["attach-session", "-t", self.session_name])

    def get_activity_monitor(self) -> TmuxActivityMonitor:
        return self.activity_monitor

    async def update_activity_timeout(self, seconds: int) -> None:
        await self.activity_monitor.update_activity_timeout(seconds)

    def supports_activity_monitoring(self) -> bool:
        return True

    def supports_buffer_reading(self) -> bool:
        return True

    def supports_idle_detection(self) -> bool:
        return True

    async def cleanup_closed_windows(self) -> List[TmuxTerminal]:
        """Reconcile the registry with tmux; returns the terminals found closed."""
        if self._disposed:
            return []
        windows = await self.window_manager.list_windows()
        if self._disposed:
            return []

        existing = {w.index for w in windows}
        closed = [t for index, t in self._terminals.items() if index not in existing]
        for terminal in closed:
            self._remove(terminal)
            self.on_did_close_terminal.fire(terminal)
            self._schedule_base_recreation(terminal)
        if closed:
            logger.info(f"Cleaned up {len(closed)} closed terminal(s)")
        return closed

    def _schedule_base_recreation(self, terminal: TmuxTerminal) -> None:
        if terminal.is_base and not self._disposed:
            self._spawn(self._recreate_base_terminal(terminal))

    async def _recreate_base_terminal(self, terminal: TmuxTerminal) -> None:
        # Short delay so a burst of closes settles before we decide
        await asyncio.sleep(self.config.base_recreate_delay)
        if self._disposed:
            return

        try:
            if not terminal.feature_key:
                if self.get_global_base_terminal() is not None:
                    return
                await self.create_terminal(
                    TerminalOptions(
                        name=global_base_window_name(),
                        category=TerminalCategory.MAIN,
                        cwd=self.config.workspace_path,
                        is_base=True,
                        show=True,
                    )
                )
                logger.info("Recreated global base terminal")
                return

            feature_key = terminal.feature_key
            feature_path = self._feature_paths.get(feature_key)
            if not feature_path or self.get_terminals_by_feature(feature_key):
                return
            await self.create_terminal(
                TerminalOptions(
                    name=console_window_name(feature_key),
                    category=TerminalCategory.CONSOLE,
                    cwd=feature_path,
                    feature_key=feature_key,
                    is_base=True,
                    show=True,
                )
            )
            logger.info(f"Recreated base terminal for feature: {feature_key}")
        except ProviderDisposedError:
            logger.debug("Provider disposed while recreating base terminal")

    def dispose(self, kill_session: bool = True) -> None:
        """Stop timers, stop control mode, kill the session, clear the registry.

        Runs synchronously so it can be called from shutdown hooks.
        """
        if self._disposed:
            return
        self._disposed = True

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        for task in list(self._background):
            task.cancel()
        self._background.clear()
        self.activity_monitor.stop()
        self._polling = False

        if self.control_mode is not None:
            self.control_mode.dispose()

        self.session_manager.close()
        if kill_session:
            try:
                self.session_manager.kill_session_sync()
            except Exception as e:
                logger.error(f"Failed to kill tmux session during dispose: {e}")

        self.activity_monitor.dispose()
        self._terminals.clear()
        self._terminal_ids.clear()
        self._feature_paths.clear()
        self._active_terminal = None

        self.on_did_close_terminal.dispose()
        self.on_did_change_active_terminal.dispose()
        self.on_did_detect_activity.dispose()
        self.on_did_detect_idle.dispose()
        self.on_did_request_show.dispose()
        logger.info(f"Disposed tmux terminal provider for session {self.session_name}")
