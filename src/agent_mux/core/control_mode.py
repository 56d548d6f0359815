"""tmux control mode (-C): event-driven session monitoring.

In control mode tmux writes one notification per line, each starting with
``%``::

    %window-add @1
    %window-close @1
    %window-renamed @1 new name
    %output %3 bytes written by the pane
    %layout-change @1 b25d,80x24,0,0,2 ...
    %session-changed $0 agentmux-default
    %session-renamed $0 new-name
    %session-closed $0
    %client-session-changed /dev/ttys003 $0 agentmux-default

The last field runs to the end of the line and may contain spaces. Other
lines (command replies, %begin/%end blocks, unknown notifications) are
ignored.
"""

import asyncio
import codecs
import logging
from typing import Callable, Dict, List, Optional

from agent_mux.constants import CONTROL_EVENT_MARKER, CONTROL_STOP_GRACE
from agent_mux.core.events import EventEmitter
from agent_mux.core.session_manager import TmuxSessionManager
from agent_mux.exceptions import AgentMuxError, ProtocolParseError, StreamTerminatedError
from agent_mux.models.control_event import (
    ClientSessionChangedEvent,
    ControlEvent,
    ControlEventType,
    LayoutChangeEvent,
    OutputEvent,
    SessionChangedEvent,
    SessionClosedEvent,
    SessionRenamedEvent,
    WindowAddEvent,
    WindowCloseEvent,
    WindowRenamedEvent,
)

logger = logging.getLogger(__name__)


def _split_fields(line: str, count: int) -> List[str]:
    """Split the text after the event name into at most ``count`` fields."""
    body = line.split(" ", 1)[1] if " " in line else ""
    return body.split(" ", count - 1) if body else []


def _require(line: str, fields: List[str], count: int, prefix: str, what: str) -> None:
    if len(fields) < count or not fields[0].startswith(prefix) or not fields[0][1:].isdigit():
        raise ProtocolParseError(line, f"expected {what}")


def _window_event(cls, line: str, extra: Optional[str] = None):
    fields = _split_fields(line, 2)
    _require(line, fields, 1, "@", "window id")
    kwargs = {"raw": line, "window_id": fields[0]}
    if extra is not None:
        kwargs[extra] = fields[1] if len(fields) > 1 else ""
    return cls(**kwargs)


def _parse_output(line: str) -> OutputEvent:
    fields = _split_fields(line, 2)
    _require(line, fields, 1, "%", "pane id")
    return OutputEvent(raw=line, pane_id=fields[0], content=fields[1] if len(fields) > 1 else "")


def _parse_session_changed(line: str) -> SessionChangedEvent:
    fields = _split_fields(line, 2)
    _require(line, fields, 1, "$", "session id")
    return SessionChangedEvent(raw=line, session_id=fields[0], session_name=fields[1] if len(fields) > 1 else "")


def _parse_session_renamed(line: str) -> SessionRenamedEvent:
    fields = _split_fields(line, 2)
    _require(line, fields, 1, "$", "session id")
    return SessionRenamedEvent(raw=line, session_id=fields[0], new_name=fields[1] if len(fields) > 1 else "")


def _parse_session_closed(line: str) -> SessionClosedEvent:
    fields = _split_fields(line, 1)
    _require(line, fields, 1, "$", "session id")
    return SessionClosedEvent(raw=line, session_id=fields[0])


def _parse_client_session_changed(line: str) -> ClientSessionChangedEvent:
    fields = _split_fields(line, 3)
    if len(fields) < 2 or not fields[1].startswith("$"):
        raise ProtocolParseError(line, "expected client name and session id")
    return ClientSessionChangedEvent(
        raw=line,
        client_name=fields[0],
        session_id=fields[1],
        session_name=fields[2] if len(fields) > 2 else "",
    )


_PARSERS: Dict[str, Callable[[str], ControlEvent]] = {
    ControlEventType.WINDOW_ADD.value: lambda line: _window_event(WindowAddEvent, line),
    ControlEventType.WINDOW_CLOSE.value: lambda line: _window_event(WindowCloseEvent, line),
    ControlEventType.WINDOW_RENAMED.value: lambda line: _window_event(WindowRenamedEvent, line, "new_name"),
    ControlEventType.LAYOUT_CHANGE.value: lambda line: _window_event(LayoutChangeEvent, line, "layout"),
    ControlEventType.OUTPUT.value: _parse_output,
    ControlEventType.SESSION_CHANGED.value: _parse_session_changed,
    ControlEventType.SESSION_RENAMED.value: _parse_session_renamed,
    ControlEventType.SESSION_CLOSED.value: _parse_session_closed,
    ControlEventType.CLIENT_SESSION_CHANGED.value: _parse_client_session_changed,
}


def parse_control_line(line: str) -> Optional[ControlEvent]:
    """Decode one control-mode line.

    Returns None for lines that are not notifications or name an unknown
    event. Raises ProtocolParseError when a known event is malformed.
    """
    if not line.startswith(CONTROL_EVENT_MARKER):
        return None
    name = line[1:].split(" ", 1)[0]
    parser = _PARSERS.get(name)
    if parser is None:
        logger.debug(f"Ignoring control-mode line: {line}")
        return None
    return parser(line)


class TmuxControlModeManager:
    """Runs ``tmux -C attach-session`` and publishes its notifications."""

    def __init__(self, session_manager: TmuxSessionManager):
        self.session_manager = session_manager
        self._process: Optional[asyncio.subprocess.Process] = None
        self._tasks: List[asyncio.Task] = []
        self._buffer = ""
        self._running = False
        self._stopping = False

        self.on_event: EventEmitter[ControlEvent] = EventEmitter("control-event")
        self.on_error: EventEmitter[AgentMuxError] = EventEmitter("control-error")
        self._emitters: Dict[ControlEventType, EventEmitter] = {kind: EventEmitter(kind.value) for kind in ControlEventType}

    @property
    def on_window_add(self) -> EventEmitter[WindowAddEvent]:
        return self._emitters[ControlEventType.WINDOW_ADD]

    @property
    def on_window_close(self) -> EventEmitter[WindowCloseEvent]:
        return self._emitters[ControlEventType.WINDOW_CLOSE]

    @property
    def on_window_renamed(self) -> EventEmitter[WindowRenamedEvent]:
        return self._emitters[ControlEventType.WINDOW_RENAMED]

    @property
    def on_output(self) -> EventEmitter[OutputEvent]:
        return self._emitters[ControlEventType.OUTPUT]

    @property
    def on_layout_change(self) -> EventEmitter[LayoutChangeEvent]:
        return self._emitters[ControlEventType.LAYOUT_CHANGE]

    @property
    def on_session_changed(self) -> EventEmitter[SessionChangedEvent]:
        return self._emitters[ControlEventType.SESSION_CHANGED]

    @property
    def on_session_renamed(self) -> EventEmitter[SessionRenamedEvent]:
        return self._emitters[ControlEventType.SESSION_RENAMED]

    @property
    def on_session_closed(self) -> EventEmitter[SessionClosedEvent]:
        return self._emitters[ControlEventType.SESSION_CLOSED]

    @property
    def on_client_session_changed(self) -> EventEmitter[ClientSessionChangedEvent]:
        return self._emitters[ControlEventType.CLIENT_SESSION_CHANGED]

    async def start(self) -> None:
        """Spawn the control-mode client.

        Raises:
            StreamTerminatedError: the process could not be started
        """
        if self._running:
            return

        await self.session_manager.ensure_session()
        argv = self.session_manager.client.build_argv(["-C", "attach-session", "-t", self.session_manager.session_name])
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StreamTerminatedError(f"Failed to start control mode: {e}") from e

        self._running = True
        self._stopping = False
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._read_stdout(self._process)),
            loop.create_task(self._read_stderr(self._process)),
        ]
        logger.info("Started control mode monitoring")

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await process.stdout.read(4096)
                if not chunk:
                    break
                self.feed(decoder.decode(chunk))
            returncode = await process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._terminated(StreamTerminatedError(f"Control mode stream error: {e}"))
            return

        logger.info(f"Control mode process exited with code {returncode}")
        self._terminated(
            StreamTerminatedError(f"Control mode process exited with code {returncode}", returncode=returncode)
        )

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            logger.error(f"Control mode stderr: {line.decode(errors='replace').rstrip()}")

    def _terminated(self, error: StreamTerminatedError) -> None:
        was_running = self._running and not self._stopping
        self._running = False
        self._process = None
        if was_running:
            self.on_error.fire(error)

    def feed(self, data: str) -> None:
        """Consume a chunk of stream output; a trailing partial line is kept for the next chunk."""
        self._buffer += data
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            line = line.rstrip("\r")
            if line.strip():
                self._process_line(line)

    def _process_line(self, line: str) -> None:
        try:
            event = parse_control_line(line)
        except ProtocolParseError as e:
            logger.warning(str(e))
            return
        if event is None:
            return
        self._emitters[event.kind].fire(event)
        self.on_event.fire(event)

    def is_running(self) -> bool:
        return self._running

    def send_command(self, command: str) -> None:
        """Write one command line to the control client."""
        if self._process is None or self._process.stdin is None:
            raise StreamTerminatedError("Control mode process not running")
        self._process.stdin.write(f"{command}\n".encode())

    def stop(self) -> None:
        """Detach and terminate the control client without waiting."""
        if not self._running and self._process is None:
            return

        self._stopping = True
        process = self._process
        if process is not None:
            try:
                self.send_command("detach-client")
            except Exception as e:
                logger.debug(f"Could not send detach-client: {e}")
            if process.returncode is None:
                try:
                    loop = asyncio.get_running_loop()
                    loop.call_later(CONTROL_STOP_GRACE, self._terminate, process)
                except RuntimeError:
                    self._terminate(process)

        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self._process = None
        self._running = False
        self._buffer = ""
        logger.info("Stopped control mode monitoring")

    @staticmethod
    def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass

    def dispose(self) -> None:
        self.stop()
        self.on_event.dispose()
        self.on_error.dispose()
        for emitter in self._emitters.values():
            emitter.dispose()
