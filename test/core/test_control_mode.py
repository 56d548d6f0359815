"""Tests for tmux control mode parsing and process handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent_mux.core.control_mode import TmuxControlModeManager, parse_control_line
from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.exceptions import ProtocolParseError, StreamTerminatedError
from agent_mux.models.control_event import (
    ClientSessionChangedEvent,
    ControlEventType,
    OutputEvent,
    SessionChangedEvent,
    WindowCloseEvent,
    WindowRenamedEvent,
)

SESSION = "agentmux-test"


@pytest.fixture
def manager(fake_tmux):
    return TmuxControlModeManager(TmuxSessionManager(SESSION, fake_tmux))


class TestParseControlLine:
    """Tests for decoding single notifications."""

    def test_window_events(self):
        event = parse_control_line("%window-close @12")

        assert isinstance(event, WindowCloseEvent)
        assert event.window_id == "@12"
        assert event.window_number == 12
        assert event.raw == "%window-close @12"
        assert parse_control_line("%window-add @3").kind == ControlEventType.WINDOW_ADD

    def test_trailing_field_keeps_spaces(self):
        renamed = parse_control_line("%window-renamed @1 agent: checkout-flow-Implement")
        output = parse_control_line("%output %3 hello  world")

        assert isinstance(renamed, WindowRenamedEvent)
        assert renamed.new_name == "agent: checkout-flow-Implement"
        assert isinstance(output, OutputEvent)
        assert output.pane_id == "%3"
        assert output.content == "hello  world"

    def test_session_events(self):
        changed = parse_control_line("%session-changed $0 agentmux-test")
        client = parse_control_line("%client-session-changed /dev/ttys003 $1 agentmux-other")

        assert isinstance(changed, SessionChangedEvent)
        assert changed.session_id == "$0"
        assert changed.session_name == "agentmux-test"
        assert isinstance(client, ClientSessionChangedEvent)
        assert client.client_name == "/dev/ttys003"
        assert client.session_name == "agentmux-other"
        assert parse_control_line("%session-renamed $0 new-name").new_name == "new-name"
        assert parse_control_line("%session-closed $4").session_id == "$4"

    def test_layout_change(self):
        event = parse_control_line("%layout-change @2 b25d,80x24,0,0,2 b25d,80x24,0,0,2 *")

        assert event.kind == ControlEventType.LAYOUT_CHANGE
        assert event.layout.startswith("b25d")

    def test_ignored_lines(self):
        assert parse_control_line("%begin 1700000000 1 0") is None
        assert parse_control_line("%sessions-changed") is None
        assert parse_control_line("plain reply text") is None

    @pytest.mark.parametrize("line", ["%window-close", "%window-close 12", "%output", "%session-closed @1"])
    def test_malformed_known_events(self, line):
        with pytest.raises(ProtocolParseError):
            parse_control_line(line)


class TestFeed:
    """Tests for stream chunk handling."""

    def test_partial_lines_are_buffered(self, manager):
        received = []
        manager.on_event(received.append)

        manager.feed("%window-ad")
        assert received == []

        manager.feed("d @1\r\n%output %1 par")
        assert [e.kind for e in received] == [ControlEventType.WINDOW_ADD]

        manager.feed("tial\n")
        assert received[1].content == "partial"

    def test_per_kind_emitters(self, manager):
        closes, outputs = [], []
        manager.on_window_close(closes.append)
        manager.on_output(outputs.append)

        manager.feed("%window-close @1\n%output %2 x\n%window-add @3\n")

        assert [e.window_id for e in closes] == ["@1"]
        assert [e.pane_id for e in outputs] == ["%2"]

    def test_malformed_line_is_skipped(self, manager):
        received = []
        manager.on_event(received.append)

        manager.feed("%window-close nope\n%window-close @5\n")

        assert [e.window_id for e in received] == ["@5"]


def _fake_process(chunks, returncode=0):
    # One read() per chunk, then EOF
    reader = MagicMock()
    reader.read = AsyncMock(side_effect=list(chunks) + [b""])
    stderr = asyncio.StreamReader()
    stderr.feed_eof()

    process = MagicMock()
    process.stdout = reader
    process.stderr = stderr
    process.stdin = MagicMock()
    process.returncode = None
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestControlModeProcess:
    """Tests for the control-mode subprocess lifecycle."""

    @pytest.mark.asyncio
    async def test_start_failure_raises_stream_terminated(self, manager):
        with patch("agent_mux.core.control_mode.asyncio.create_subprocess_exec", side_effect=FileNotFoundError("tmux")):
            with pytest.raises(StreamTerminatedError):
                await manager.start()

        assert manager.is_running() is False

    @pytest.mark.asyncio
    async def test_stream_decodes_split_utf8_and_reports_exit(self, manager, fake_tmux):
        encoded = "%output %1 café\n".encode("utf-8")
        process = _fake_process([encoded[:-2], encoded[-2:]], returncode=0)
        outputs, errors = [], []
        manager.on_output(outputs.append)
        manager.on_error(errors.append)

        with patch("agent_mux.core.control_mode.asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as mock_exec:
            await manager.start()
            await asyncio.gather(*manager._tasks)

        argv = mock_exec.call_args[0]
        assert argv[:4] == ("tmux", "-C", "attach-session", "-t")
        assert SESSION in fake_tmux.sessions
        assert [e.content for e in outputs] == ["café"]
        assert len(errors) == 1
        assert isinstance(errors[0], StreamTerminatedError)
        assert errors[0].returncode == 0
        assert manager.is_running() is False

    @pytest.mark.asyncio
    async def test_stop_detaches_without_error_event(self, manager):
        process = _fake_process([])
        process.stdout = asyncio.StreamReader()
        errors = []
        manager.on_error(errors.append)

        with patch("agent_mux.core.control_mode.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            await manager.start()
        manager.stop()
        await asyncio.sleep(0)

        process.stdin.write.assert_called_once_with(b"detach-client\n")
        assert errors == []
        assert manager.is_running() is False

    def test_stop_when_not_started(self, manager):
        manager.stop()

        assert manager.is_running() is False

    def test_send_command_requires_process(self, manager):
        with pytest.raises(StreamTerminatedError):
            manager.send_command("list-windows")
