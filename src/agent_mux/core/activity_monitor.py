"""Poll-based activity/idle detection for tmux windows.

tmux reports two things per window: the time of the last output
(``window_activity``) and a silence flag that is raised once the window has
been quiet for ``monitor-silence`` seconds. Neither is usable directly: a
single keystroke bumps the activity time, and the silence flag lags by the
full timeout. The monitor turns them into a debounced state per window:

    IDLE -> PENDING   new activity seen, not yet sustained
    PENDING -> ACTIVE new activity still arriving after ``active_delay``
    ACTIVE -> GRACE   activity stopped but tmux has not confirmed silence
    * -> IDLE         silence flag set, or ``activity_timeout`` since the last activity

Activity and idle events fire on edges only.
"""

import asyncio
import logging
import math
import time
from typing import Callable, Dict, Optional

from agent_mux.constants import DEFAULT_ACTIVE_DELAY, DEFAULT_ACTIVITY_TIMEOUT, INIT_WINDOW_NAME
from agent_mux.core.events import EventEmitter
from agent_mux.core.window_manager import TmuxWindowManager
from agent_mux.models.terminal import ActivityPhase, ActivityState
from agent_mux.models.window import WindowInfo

logger = logging.getLogger(__name__)


class TmuxActivityMonitor:
    """Tracks per-window activity state and emits activity/idle edges."""

    def __init__(
        self,
        window_manager: TmuxWindowManager,
        activity_timeout: float = DEFAULT_ACTIVITY_TIMEOUT,
        active_delay: float = DEFAULT_ACTIVE_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_manager = window_manager
        self.activity_timeout = activity_timeout
        self.active_delay = active_delay
        self._clock = clock

        self._states: Dict[int, ActivityState] = {}
        self._last_seen_timestamp: Dict[int, str] = {}
        self._burst_start: Dict[int, float] = {}
        self._poll_task: Optional[asyncio.Task] = None

        self.on_activity: EventEmitter[int] = EventEmitter("activity")
        self.on_idle: EventEmitter[int] = EventEmitter("idle")

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start(self, interval: float) -> None:
        """Start polling every ``interval`` seconds. Requires a running event loop."""
        if self.running:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(interval))

    async def _poll_loop(self, interval: float) -> None:
        # Windows created before start() may still carry the default silence threshold
        await self.update_activity_timeout(self.activity_timeout)
        while True:
            try:
                await self.check_activity()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error checking tmux activity: {e}")
            await asyncio.sleep(interval)

    def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def check_activity(self) -> None:
        """Run one monitoring tick over every window in the session."""
        windows = await self.window_manager.list_windows()
        now = self._clock()

        for window in windows:
            if window.name == INIT_WINDOW_NAME:
                continue
            self._update_window(window, now)

        present = {w.index for w in windows}
        for index in list(self._states):
            if index not in present:
                self._forget(index)

    def _update_window(self, window: WindowInfo, now: float) -> None:
        index = window.index
        previous = self._states.get(index)

        current_timestamp = window.activity_timestamp
        is_new_activity = current_timestamp != "" and current_timestamp != self._last_seen_timestamp.get(index, "")
        if current_timestamp:
            self._last_seen_timestamp[index] = current_timestamp

        last_activity = now if is_new_activity else (previous.last_activity_detected if previous else None)

        if is_new_activity:
            burst_start = self._burst_start.setdefault(index, now)
            phase = ActivityPhase.ACTIVE if now - burst_start >= self.active_delay else ActivityPhase.PENDING
        elif window.has_silence:
            # tmux's silence flag is authoritative
            phase = ActivityPhase.IDLE
        elif previous is not None and last_activity is not None and now - last_activity < self.activity_timeout:
            if previous.is_active:
                phase = ActivityPhase.GRACE
            else:
                phase = ActivityPhase.PENDING
        else:
            phase = ActivityPhase.IDLE

        if phase == ActivityPhase.IDLE:
            self._burst_start.pop(index, None)

        is_active = phase in (ActivityPhase.ACTIVE, ActivityPhase.GRACE)
        state = ActivityState(
            is_active=is_active,
            is_idle=not is_active,
            last_checked=now,
            last_activity_detected=last_activity,
            phase=phase,
        )
        self._states[index] = state

        if previous is not None:
            if not previous.is_active and state.is_active:
                self.on_activity.fire(index)
            if not previous.is_idle and state.is_idle:
                self.on_idle.fire(index)

    def _forget(self, index: int) -> None:
        self._states.pop(index, None)
        self._last_seen_timestamp.pop(index, None)
        self._burst_start.pop(index, None)

    def get_activity_state(self, window_index: int) -> Optional[ActivityState]:
        return self._states.get(window_index)

    def get_all_activity_states(self) -> Dict[int, ActivityState]:
        return dict(self._states)

    async def update_activity_timeout(self, timeout_seconds: float) -> None:
        """Set a new grace period and push it to every window's monitor-silence option."""
        self.activity_timeout = timeout_seconds
        # monitor-silence takes whole seconds and 0 disables it
        silence_seconds = max(1, math.ceil(timeout_seconds))
        self.window_manager.silence_seconds = silence_seconds
        try:
            for window in await self.window_manager.list_windows():
                if window.name != INIT_WINDOW_NAME:
                    await self.window_manager.set_window_option(window.index, "monitor-silence", silence_seconds)
        except Exception as e:
            logger.error(f"Error updating activity timeout: {e}")

    def dispose(self) -> None:
        self.stop()
        self.on_activity.dispose()
        self.on_idle.dispose()
        self._states.clear()
        self._last_seen_timestamp.clear()
        self._burst_start.clear()
