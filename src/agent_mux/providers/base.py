"""Terminal provider contract consumed by the host application.

A "provider" is a backend that renders long-lived terminals for background
workers (coding agents, test runners, consoles). The host talks to every
backend through the two abstract classes defined here:

- ``BaseTerminal``: one terminal handle (show, send text, dispose, and,
  depending on ``capabilities``, buffer reading and activity queries)
- ``BaseTerminalProvider``: creation, lookup and lifecycle of handles plus
  the close / active-terminal / activity / idle events

Optional features are advertised explicitly through ``Capability`` flags, so
callers never need to probe a handle's concrete type.

Implemented providers:
- TmuxTerminalProvider: windows inside one tmux session per workspace
"""

from abc import ABC, abstractmethod
from typing import FrozenSet, List, Optional

from agent_mux.core.events import EventEmitter
from agent_mux.models.terminal import (
    ActivityStatus,
    BackendKind,
    Capability,
    TerminalCategory,
    TerminalOptions,
)


class BaseTerminal(ABC):
    """A terminal handle owned by a provider.

    Attributes:
        name: Window/terminal name
        feature_key: Associated feature, None for global terminals
        category: What the terminal hosts
        is_base: Whether the terminal is the base terminal of its scope
    """

    backend: BackendKind
    capabilities: FrozenSet[Capability] = frozenset()

    def __init__(self, name: str, feature_key: Optional[str], category: TerminalCategory, is_base: bool = False):
        self.name = name
        self.feature_key = feature_key
        self.category = category
        self.is_base = is_base

    @property
    @abstractmethod
    def id(self) -> str:
        """Stable identifier for the lifetime of the handle."""
        pass

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def show(self, preserve_focus: bool = False) -> None:
        """Surface the terminal in the host UI."""
        pass

    @abstractmethod
    async def send_text(self, text: str, add_new_line: bool = True) -> None:
        """Send text, optionally followed by Enter."""
        pass

    @abstractmethod
    async def dispose(self) -> None:
        """Close the terminal. Calling it again is a no-op."""
        pass

    async def get_buffer(self, include_history: bool = True) -> str:
        """Return the terminal contents (requires BUFFER_READING)."""
        raise NotImplementedError(f"{self.backend} terminals do not support buffer reading")

    def is_active(self) -> bool:
        """Whether the terminal currently shows sustained activity (requires ACTIVITY_MONITORING)."""
        return False

    def is_idle(self) -> bool:
        """Whether the terminal is idle (requires IDLE_DETECTION)."""
        return False

    def get_activity_state(self) -> Optional[ActivityStatus]:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r}, feature_key={self.feature_key!r})"


class BaseTerminalProvider(ABC):
    """Abstract base class for terminal providers."""

    on_did_close_terminal: EventEmitter[BaseTerminal]
    on_did_change_active_terminal: EventEmitter[Optional[BaseTerminal]]
    # Only present when supports_activity_monitoring() is true
    on_did_detect_activity: Optional[EventEmitter[BaseTerminal]] = None
    on_did_detect_idle: Optional[EventEmitter[BaseTerminal]] = None

    @abstractmethod
    async def initialize(self) -> None:
        pass

    @abstractmethod
    async def create_terminal(self, options: TerminalOptions) -> BaseTerminal:
        pass

    @abstractmethod
    def get_active_terminals(self) -> List[BaseTerminal]:
        pass

    @abstractmethod
    def get_terminals_by_feature(self, feature_key: str) -> List[BaseTerminal]:
        pass

    @abstractmethod
    def get_terminal_by_id(self, terminal_id: str) -> Optional[BaseTerminal]:
        pass

    @abstractmethod
    def get_global_base_terminal(self) -> Optional[BaseTerminal]:
        pass

    @abstractmethod
    def dispose(self) -> None:
        pass

    @abstractmethod
    def supports_activity_monitoring(self) -> bool:
        pass

    @abstractmethod
    def supports_buffer_reading(self) -> bool:
        pass

    @abstractmethod
    def supports_idle_detection(self) -> bool:
        pass
