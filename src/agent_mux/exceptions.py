"""Exception hierarchy for agent-mux.

Every error raised by the tmux backend derives from ``AgentMuxError`` so that
a host can catch the whole family in one place. The subclasses map to the
ways the multiplexer can fail:

- the binary is missing (``MultiplexerUnavailableError``)
- a command exits non-zero (``CommandExecutionError``), including the
  special case of a target that no longer exists (``WindowNotFoundError``)
- the control-mode stream misbehaves (``ProtocolParseError``,
  ``StreamTerminatedError``)
- the provider is used after shutdown (``ProviderDisposedError``)
"""

from typing import Any, Dict, Optional, Sequence

# Fragments of tmux stderr that mean "the thing you addressed is gone"
MISSING_TARGET_MARKERS = (
    "can't find window",
    "can't find session",
    "can't find pane",
    "window not found",
    "session not found",
    "no server running",
    "no such",
)


class AgentMuxError(Exception):
    """Base exception for all agent-mux errors."""

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


class MultiplexerUnavailableError(AgentMuxError):
    """Raised when the tmux binary cannot be found."""

    def __init__(self, message: str = "tmux is not installed or not on PATH"):
        super().__init__(message)


class SessionCreationError(AgentMuxError):
    """Raised when the tmux session cannot be created."""


class CommandExecutionError(AgentMuxError):
    """Raised when a tmux command exits non-zero or cannot be spawned."""

    def __init__(self, command: Sequence[str], returncode: Optional[int], stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(
            f"tmux command failed: {' '.join(self.command)}",
            context={"returncode": returncode, "stderr": self.stderr},
        )

    @property
    def missing_target(self) -> bool:
        """True when tmux reported that the addressed session/window is gone."""
        lowered = self.stderr.lower()
        return any(marker in lowered for marker in MISSING_TARGET_MARKERS)


class WindowNotFoundError(CommandExecutionError):
    """Raised when the target window no longer exists."""

    @classmethod
    def from_error(cls, error: CommandExecutionError) -> "WindowNotFoundError":
        return cls(error.command, error.returncode, error.stderr)


class ProtocolParseError(AgentMuxError):
    """Raised for a control-mode line that names a known event but is malformed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        super().__init__(f"Malformed control-mode line: {reason}", context={"line": line})


class StreamTerminatedError(AgentMuxError):
    """Raised when the control-mode process exits, errors, or fails to start."""

    def __init__(self, message: str, *, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message, context={"returncode": returncode} if returncode is not None else None)


class ProviderDisposedError(AgentMuxError):
    """Raised when a terminal is requested from a disposed provider."""

    def __init__(self, operation: str = "create_terminal"):
        super().__init__("Terminal provider has been disposed", context={"operation": operation})
