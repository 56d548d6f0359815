"""Typed events decoded from the tmux control-mode stream."""

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field


class ControlEventType(str, Enum):
    """Control-mode notification names (without the leading marker)."""

    WINDOW_ADD = "window-add"
    WINDOW_CLOSE = "window-close"
    WINDOW_RENAMED = "window-renamed"
    OUTPUT = "output"
    LAYOUT_CHANGE = "layout-change"
    SESSION_CHANGED = "session-changed"
    SESSION_RENAMED = "session-renamed"
    SESSION_CLOSED = "session-closed"
    CLIENT_SESSION_CHANGED = "client-session-changed"


class _WindowEvent(BaseModel):
    raw: str
    window_id: str = Field(..., description="tmux window id, e.g. @3")

    @property
    def window_number(self) -> int:
        """Numeric part of the window id; not the window index."""
        return int(self.window_id.lstrip("@"))


class WindowAddEvent(_WindowEvent):
    kind: Literal[ControlEventType.WINDOW_ADD] = ControlEventType.WINDOW_ADD


class WindowCloseEvent(_WindowEvent):
    kind: Literal[ControlEventType.WINDOW_CLOSE] = ControlEventType.WINDOW_CLOSE


class WindowRenamedEvent(_WindowEvent):
    kind: Literal[ControlEventType.WINDOW_RENAMED] = ControlEventType.WINDOW_RENAMED
    new_name: str = ""


class LayoutChangeEvent(_WindowEvent):
    kind: Literal[ControlEventType.LAYOUT_CHANGE] = ControlEventType.LAYOUT_CHANGE
    layout: str = ""


class OutputEvent(BaseModel):
    kind: Literal[ControlEventType.OUTPUT] = ControlEventType.OUTPUT
    raw: str
    pane_id: str = Field(..., description="tmux pane id, e.g. %1")
    content: str = ""


class SessionChangedEvent(BaseModel):
    kind: Literal[ControlEventType.SESSION_CHANGED] = ControlEventType.SESSION_CHANGED
    raw: str
    session_id: str
    session_name: str = ""


class SessionRenamedEvent(BaseModel):
    kind: Literal[ControlEventType.SESSION_RENAMED] = ControlEventType.SESSION_RENAMED
    raw: str
    session_id: str
    new_name: str = ""


class SessionClosedEvent(BaseModel):
    kind: Literal[ControlEventType.SESSION_CLOSED] = ControlEventType.SESSION_CLOSED
    raw: str
    session_id: str


class ClientSessionChangedEvent(BaseModel):
    kind: Literal[ControlEventType.CLIENT_SESSION_CHANGED] = ControlEventType.CLIENT_SESSION_CHANGED
    raw: str
    client_name: str
    session_id: str
    session_name: str = ""


ControlEvent = Union[
    WindowAddEvent,
    WindowCloseEvent,
    WindowRenamedEvent,
    LayoutChangeEvent,
    OutputEvent,
    SessionChangedEvent,
    SessionRenamedEvent,
    SessionClosedEvent,
    ClientSessionChangedEvent,
]
