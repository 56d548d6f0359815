"""Tmux command runner: async subprocess calls plus libtmux for blocking shutdown work."""

import asyncio
import logging
import re
import shutil
from typing import List, Optional, Union

import libtmux

from agent_mux.constants import TMUX_BINARY
from agent_mux.exceptions import CommandExecutionError, MultiplexerUnavailableError
from agent_mux.models.window import WindowInfo

logger = logging.getLogger(__name__)

# Name goes last so that a "|" inside an externally created window name survives the split
WINDOW_FORMAT = (
    "#{window_index}|#{window_activity}|#{window_activity_flag}|"
    "#{window_silence_flag}|#{window_active}|#{window_panes}|#{window_name}"
)

# tmux treats these as command separators or quoting when it re-parses arguments
_UNSAFE_CHARS = re.compile(r"[;|&$`{}\[\]<>'\"\\\n\r]")

# stderr noise that tmux prints on success when no client is attached
_BENIGN_STDERR = ("no current client",)


def sanitize(text: str) -> str:
    """Replace characters that tmux could interpret as separators or quoting."""
    return _UNSAFE_CHARS.sub("_", text)


def make_target(session_name: str, window: Union[int, str]) -> str:
    """Build a session:window target."""
    return f"{session_name}:{window}"


def _flag(value: str) -> bool:
    return value not in ("", "0")


def parse_window_line(line: str) -> Optional[WindowInfo]:
    """Parse one line of list-windows output produced with WINDOW_FORMAT."""
    parts = line.split("|", 6)
    if len(parts) < 7:
        return None
    index_str, activity, activity_flag, silence_flag, active, panes, name = parts
    try:
        index = int(index_str)
    except ValueError:
        return None
    return WindowInfo(
        index=index,
        name=name,
        has_activity=_flag(activity_flag),
        has_silence=_flag(silence_flag),
        is_active=active == "1",
        pane_count=int(panes) if panes.isdigit() else 1,
        activity_timestamp=activity if _flag(activity) else "",
    )


def is_tmux_installed() -> bool:
    """Check whether the tmux binary is on PATH."""
    return shutil.which(TMUX_BINARY) is not None


class TmuxClient:
    """Runs tmux commands for one tmux server (default socket or -L socket)."""

    def __init__(self, socket_name: Optional[str] = None):
        self.socket_name = socket_name
        self._server: Optional[libtmux.Server] = None

    @property
    def server(self) -> libtmux.Server:
        """libtmux server, created lazily so construction never touches tmux."""
        if self._server is None:
            self._server = libtmux.Server(socket_name=self.socket_name)
        return self._server

    def build_argv(self, args) -> List[str]:
        argv = [TMUX_BINARY]
        if self.socket_name:
            argv += ["-L", self.socket_name]
        return argv + [str(arg) for arg in args]

    async def run(self, *args) -> str:
        """Run a tmux command and return its stripped stdout.

        Raises:
            MultiplexerUnavailableError: tmux binary not found
            CommandExecutionError: non-zero exit status
        """
        argv = self.build_argv(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise MultiplexerUnavailableError() from e
        except OSError as e:
            raise CommandExecutionError(argv, None, str(e)) from e

        stdout, stderr = await proc.communicate()
        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")

        if proc.returncode != 0:
            raise CommandExecutionError(argv, proc.returncode, err)
        if err and not any(noise in err for noise in _BENIGN_STDERR):
            logger.debug(f"tmux stderr for {' '.join(argv)}: {err.strip()}")
        return out.strip()

    def run_sync(self, *args) -> str:
        """Run a tmux command synchronously through libtmux.

        Used at shutdown, where no further event loop turns are guaranteed.
        """
        str_args = [str(arg) for arg in args]
        try:
            result = self.server.cmd(*str_args)
        except libtmux.exc.TmuxCommandNotFound as e:
            raise MultiplexerUnavailableError() from e
        stderr = "\n".join(result.stderr or [])
        if stderr and not any(noise in stderr for noise in _BENIGN_STDERR):
            raise CommandExecutionError(self.build_argv(str_args), getattr(result, "returncode", None), stderr)
        return "\n".join(result.stdout or []).strip()

    def has_session_sync(self, session_name: str) -> bool:
        """Blocking session existence check."""
        try:
            return self.server.has_session(session_name)
        except Exception as e:
            logger.debug(f"has_session({session_name}) failed: {e}")
            return False

    async def get_tmux_version(self) -> Optional[str]:
        """Return the `tmux -V` string, or None when tmux cannot run."""
        try:
            return await self.run("-V")
        except (MultiplexerUnavailableError, CommandExecutionError):
            return None

    async def list_sessions(self) -> List[str]:
        """List session names; empty when no server is running."""
        try:
            output = await self.run("list-sessions", "-F", "#{session_name}")
        except CommandExecutionError as e:
            if e.missing_target:
                return []
            raise
        return [line for line in output.splitlines() if line]

    async def session_exists(self, session_name: str) -> bool:
        """Check if a session exists."""
        try:
            return session_name in await self.list_sessions()
        except CommandExecutionError:
            return False

    async def list_windows(self, session_name: str) -> List[WindowInfo]:
        """List windows with activity metadata; empty when the session is gone."""
        try:
            output = await self.run("list-windows", "-t", session_name, "-F", WINDOW_FORMAT)
        except CommandExecutionError as e:
            if e.missing_target:
                return []
            raise

        windows = []
        for line in output.splitlines():
            if not line:
                continue
            window = parse_window_line(line)
            if window is None:
                logger.debug(f"Skipping unparsable list-windows line: {line!r}")
                continue
            windows.append(window)
        return windows

    async def capture_pane(self, target: str, include_history: bool = True) -> str:
        """Capture pane contents, optionally including the whole scrollback."""
        args = ["capture-pane", "-p", "-t", target]
        if include_history:
            args += ["-S", "-"]
        return await self.run(*args)
