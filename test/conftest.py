"""Shared fixtures: an in-memory tmux that interprets argument vectors."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pytest

from agent_mux.adapters.tmux import TmuxClient
from agent_mux.config import TerminalConfig
from agent_mux.exceptions import CommandExecutionError


@dataclass
class FakeWindow:
    index: int
    name: str
    cwd: str = ""
    env: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, str] = field(default_factory=dict)
    keys: List[Tuple[str, bool]] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    screen: List[str] = field(default_factory=list)
    activity: str = ""
    silence: bool = False
    active: bool = False


class FakeTmuxClient(TmuxClient):
    """TmuxClient whose commands run against in-memory sessions instead of a tmux server."""

    def __init__(self):
        super().__init__(socket_name=None)
        self.sessions: Dict[str, Dict[int, FakeWindow]] = {}
        self.session_options: Dict[str, Dict[str, str]] = {}
        self.calls: List[Tuple[str, ...]] = []
        self.failures: Dict[str, str] = {}

    # Test helpers

    def add_session(self, session: str, *names: str) -> List[FakeWindow]:
        self.sessions[session] = {}
        return [self.add_window(session, name) for name in names]

    def add_window(self, session: str, name: str) -> FakeWindow:
        windows = self.sessions[session]
        index = self._free_index(windows)
        windows[index] = FakeWindow(index=index, name=name)
        return windows[index]

    def close_window(self, session: str, index: int) -> None:
        """Kill a window behind the provider's back."""
        del self.sessions[session][index]

    def window(self, session: str, index: int) -> FakeWindow:
        return self.sessions[session][index]

    def window_names(self, session: str) -> List[str]:
        return [w.name for _, w in sorted(self.sessions.get(session, {}).items())]

    def commands(self, name: str) -> List[Tuple[str, ...]]:
        return [call for call in self.calls if call[0] == name]

    # TmuxClient overrides

    async def run(self, *args) -> str:
        return self.execute(*args)

    def run_sync(self, *args) -> str:
        return self.execute(*args)

    def has_session_sync(self, session_name: str) -> bool:
        return session_name in self.sessions

    def execute(self, *args) -> str:
        args = [str(arg) for arg in args]
        self.calls.append(tuple(args))
        command = args[0]
        if command in self.failures:
            self._fail(args, self.failures[command])
        if command == "-V":
            return "tmux 3.4"
        handler = getattr(self, "_cmd_" + command.replace("-", "_"), None)
        if handler is None:
            self._fail(args, f"unknown command: {command}")
        return handler(args, args[1:])

    # Command implementations

    def _fail(self, args, stderr: str):
        raise CommandExecutionError(self.build_argv(args), 1, stderr)

    @staticmethod
    def _free_index(windows: Dict[int, FakeWindow]) -> int:
        index = 0
        while index in windows:
            index += 1
        return index

    @staticmethod
    def _opt(rest: List[str], flag: str) -> Optional[str]:
        if flag in rest:
            return rest[rest.index(flag) + 1]
        return None

    def _session(self, args, name: str) -> Dict[int, FakeWindow]:
        if name not in self.sessions:
            if not self.sessions:
                self._fail(args, "no server running on /tmp/tmux-1000/default")
            self._fail(args, f"can't find session: {name}")
        return self.sessions[name]

    def _target(self, args, target: str) -> FakeWindow:
        session, _, index = target.partition(":")
        windows = self._session(args, session)
        if not index.isdigit() or int(index) not in windows:
            self._fail(args, f"can't find window: {index}")
        return windows[int(index)]

    def _cmd_new_session(self, args, rest):
        name = self._opt(rest, "-s")
        if name in self.sessions:
            self._fail(args, f"duplicate session: {name}")
        self.add_session(name, self._opt(rest, "-n") or "0")
        self.session_options[name] = {}
        return ""

    def _cmd_set_option(self, args, rest):
        session = self._opt(rest, "-t")
        self._session(args, session)
        self.session_options.setdefault(session, {})[rest[-2]] = rest[-1]
        return ""

    def _cmd_set_window_option(self, args, rest):
        target = self._opt(rest, "-t")
        if ":" not in target:
            self._session(args, target)
            self.session_options.setdefault(target, {})[rest[-2]] = rest[-1]
            return ""
        self._target(args, target).options[rest[-2]] = rest[-1]
        return ""

    def _cmd_show_window_options(self, args, rest):
        return self._target(args, self._opt(rest, "-t")).options.get(rest[-1], "")

    def _cmd_new_window(self, args, rest):
        session = self._opt(rest, "-t")
        windows = self._session(args, session)
        window = self.add_window(session, self._opt(rest, "-n"))
        window.cwd = self._opt(rest, "-c") or ""
        for i, value in enumerate(rest):
            if value == "-e":
                key, _, env_value = rest[i + 1].partition("=")
                window.env[key] = env_value
        return str(window.index) if "-P" in rest else ""

    def _cmd_kill_window(self, args, rest):
        target = self._opt(rest, "-t")
        window = self._target(args, target)
        session = target.partition(":")[0]
        del self.sessions[session][window.index]
        if not self.sessions[session]:
            del self.sessions[session]
        return ""

    def _cmd_kill_session(self, args, rest):
        session = self._opt(rest, "-t")
        self._session(args, session)
        del self.sessions[session]
        return ""

    def _cmd_list_sessions(self, args, rest):
        if not self.sessions:
            self._fail(args, "no server running on /tmp/tmux-1000/default")
        return "\n".join(self.sessions)

    def _cmd_list_windows(self, args, rest):
        windows = self._session(args, self._opt(rest, "-t"))
        lines = []
        for index, w in sorted(windows.items()):
            flag = "1" if w.activity else "0"
            lines.append(
                f"{index}|{w.activity or '0'}|{flag}|{int(w.silence)}|{int(w.active)}|1|{w.name}"
            )
        return "\n".join(lines)

    def _cmd_select_window(self, args, rest):
        target = self._opt(rest, "-t")
        selected = self._target(args, target)
        for window in self.sessions[target.partition(":")[0]].values():
            window.active = window is selected
        return ""

    def _cmd_rename_window(self, args, rest):
        self._target(args, self._opt(rest, "-t")).name = rest[-1]
        return ""

    def _cmd_send_keys(self, args, rest):
        window = self._target(args, self._opt(rest, "-t"))
        literal = "-l" in rest
        text = rest[-1]
        window.keys.append((text, literal))
        if literal:
            window.screen.append(text)
        return ""

    def _cmd_capture_pane(self, args, rest):
        window = self._target(args, self._opt(rest, "-t"))
        lines = window.history + window.screen if "-S" in rest else window.screen
        return "\n".join(lines)

    def _cmd_detach_client(self, args, rest):
        return ""


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_tmux():
    return FakeTmuxClient()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return TerminalConfig(
        workspace_name="test",
        workspace_path=str(tmp_path),
        cleanup_interval=3600,
        monitoring_interval=10,
        base_recreate_delay=0,
    )


@pytest.fixture
def session_name(config):
    return config.full_session_name
