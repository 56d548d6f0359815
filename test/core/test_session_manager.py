"""Tests for the tmux session manager."""

from unittest.mock import patch

import pytest

from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.exceptions import SessionCreationError


class TestTmuxSessionManager:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_initialize_creates_configured_session(self, fake_tmux):
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.initialize()

        assert fake_tmux.window_names("agentmux-test") == ["init"]
        options = fake_tmux.session_options["agentmux-test"]
        assert options["monitor-activity"] == "on"
        assert options["visual-activity"] == "off"
        assert options["aggressive-resize"] == "on"

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, fake_tmux):
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.initialize()
        await manager.initialize()

        assert len(fake_tmux.commands("new-session")) == 1

    @pytest.mark.asyncio
    async def test_attaches_to_existing_session(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.initialize()

        assert fake_tmux.commands("new-session") == []
        assert await manager.get_window_count() == 1

    @pytest.mark.asyncio
    async def test_create_session_failure(self, fake_tmux):
        fake_tmux.failures["new-session"] = "create session failed"
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        with pytest.raises(SessionCreationError):
            await manager.initialize()

    @pytest.mark.asyncio
    async def test_configuration_failure_is_not_fatal(self, fake_tmux):
        fake_tmux.failures["set-option"] = "invalid option"
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.create_session()

        assert await manager.session_exists() is True

    @pytest.mark.asyncio
    async def test_window_count_excludes_init(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "init", "console: a", "test: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        assert await manager.get_window_count() == 2
        assert await manager.has_windows() is True

    @pytest.mark.asyncio
    async def test_cleanup_init_window_only_with_other_windows(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "init")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.cleanup_init_window()
        assert fake_tmux.window_names("agentmux-test") == ["init"]

        fake_tmux.add_window("agentmux-test", "console: a")
        await manager.cleanup_init_window()
        assert fake_tmux.window_names("agentmux-test") == ["console: a"]

    @pytest.mark.asyncio
    async def test_kill_session(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        await manager.kill_session()

        assert "agentmux-test" not in fake_tmux.sessions

    def test_kill_session_sync(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        manager.kill_session_sync()

        assert "agentmux-test" not in fake_tmux.sessions

    def test_kill_session_sync_missing_session(self, fake_tmux):
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        manager.kill_session_sync()

        assert fake_tmux.commands("kill-session") == []

    def test_kill_session_sync_logs_failures(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        fake_tmux.failures["kill-session"] = "permission denied"
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        with patch("agent_mux.core.session_manager.logger") as mock_logger:
            manager.kill_session_sync()

        mock_logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_killed_session_is_not_recreated(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        manager.kill_session_sync()

        assert manager.closed is True
        with pytest.raises(SessionCreationError):
            await manager.ensure_session()
        assert fake_tmux.sessions == {}
        assert fake_tmux.commands("new-session") == []

    @pytest.mark.asyncio
    async def test_closed_manager_keeps_existing_session(self, fake_tmux):
        fake_tmux.add_session("agentmux-test", "console: a")
        manager = TmuxSessionManager("agentmux-test", fake_tmux)

        manager.close()

        await manager.ensure_session()
        assert fake_tmux.window_names("agentmux-test") == ["console: a"]
