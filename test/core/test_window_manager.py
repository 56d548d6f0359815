"""Tests for the tmux window manager."""

import asyncio

import pytest

from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.core.window_manager import TmuxWindowManager
from agent_mux.exceptions import WindowNotFoundError

SESSION = "agentmux-test"


@pytest.fixture
def window_manager(fake_tmux):
    return TmuxWindowManager(TmuxSessionManager(SESSION, fake_tmux), mouse_mode=False, silence_seconds=7)


class TestCreateWindow:
    """Tests for window creation."""

    @pytest.mark.asyncio
    async def test_create_window(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a", "/work", {"FOO": "bar"})

        window = fake_tmux.window(SESSION, index)
        assert window.name == "console: a"
        assert window.cwd == "/work"
        assert window.env == {"FOO": "bar"}
        assert window.options == {"monitor-activity": "on", "monitor-silence": "7", "mouse": "off"}

    @pytest.mark.asyncio
    async def test_first_window_removes_init(self, fake_tmux, window_manager):
        await window_manager.create_window("console: a", "/work")

        assert fake_tmux.window_names(SESSION) == ["console: a"]

    @pytest.mark.asyncio
    async def test_name_is_sanitized(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a;rm -rf $HOME", "/work")

        assert fake_tmux.window(SESSION, index).name == "console: a_rm -rf _HOME"

    @pytest.mark.asyncio
    async def test_env_is_passed_as_arguments(self, fake_tmux, window_manager):
        await window_manager.create_window("console: a", "/work", {"X": "1; echo pwned"})

        new_window = fake_tmux.commands("new-window")[0]
        assert "X=1; echo pwned" in new_window


class TestWindowCommands:
    """Tests for commands addressed to one window."""

    @pytest.mark.asyncio
    async def test_send_command_presses_enter(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a", "/work")

        await window_manager.send_command(index, "npm test")

        assert fake_tmux.window(SESSION, index).keys == [("npm test", True), ("Enter", False)]

    @pytest.mark.asyncio
    async def test_kill_missing_window_is_success(self, window_manager):
        await window_manager.create_window("console: a", "/work")

        await window_manager.kill_window(42)

    @pytest.mark.asyncio
    async def test_select_missing_window(self, window_manager):
        await window_manager.create_window("console: a", "/work")

        with pytest.raises(WindowNotFoundError):
            await window_manager.select_window(42)

    @pytest.mark.asyncio
    async def test_capture_missing_window(self, window_manager):
        await window_manager.create_window("console: a", "/work")

        with pytest.raises(WindowNotFoundError):
            await window_manager.capture_pane(42)

    @pytest.mark.asyncio
    async def test_window_options(self, window_manager):
        index = await window_manager.create_window("console: a", "/work")

        await window_manager.set_window_option(index, "monitor-silence", 12)

        assert await window_manager.get_window_option(index, "monitor-silence") == "12"

    @pytest.mark.asyncio
    async def test_rename_and_find(self, window_manager):
        index = await window_manager.create_window("console: a", "/work")

        await window_manager.rename_window(index, "console: b")

        found = await window_manager.find_window_by_name("console: b")
        assert found.index == index
        assert await window_manager.window_exists(index) is True
        assert await window_manager.window_exists(99) is False

    @pytest.mark.asyncio
    async def test_commands_on_one_window_are_serialized(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a", "/work")
        order = []
        original_run = fake_tmux.run

        async def slow_run(*args):
            order.append(("start", args[0]))
            await asyncio.sleep(0.01)
            order.append(("end", args[0]))
            return await original_run(*args)

        fake_tmux.run = slow_run
        await asyncio.gather(window_manager.select_window(index), window_manager.kill_window(index))

        assert order == [
            ("start", "select-window"),
            ("end", "select-window"),
            ("start", "kill-window"),
            ("end", "kill-window"),
        ]

    @pytest.mark.asyncio
    async def test_queued_command_keeps_lock_across_kill(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a", "/work")
        order = []
        original_run = fake_tmux.run

        async def slow_run(*args):
            order.append(("start", args[0]))
            await asyncio.sleep(0.01)
            order.append(("end", args[0]))
            return await original_run(*args)

        fake_tmux.run = slow_run
        results = await asyncio.gather(
            window_manager.select_window(index),
            window_manager.kill_window(index),
            window_manager.select_window(index),
            return_exceptions=True,
        )

        assert order == [
            ("start", "select-window"),
            ("end", "select-window"),
            ("start", "kill-window"),
            ("end", "kill-window"),
            ("start", "select-window"),
            ("end", "select-window"),
        ]
        assert isinstance(results[2], WindowNotFoundError)
        assert window_manager._locks == {}

    @pytest.mark.asyncio
    async def test_locks_are_released_after_use(self, fake_tmux, window_manager):
        index = await window_manager.create_window("console: a", "/work")
        await window_manager.select_window(index)
        fake_tmux.close_window(SESSION, index)

        with pytest.raises(WindowNotFoundError):
            await window_manager.select_window(index)

        assert window_manager._locks == {}
        assert window_manager._lock_users == {}
