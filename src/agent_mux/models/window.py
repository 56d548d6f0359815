from pydantic import BaseModel, Field


class WindowInfo(BaseModel):
    """A tmux window as reported by list-windows."""

    index: int = Field(..., description="Window index (may be reused after a kill)")
    name: str = Field("", description="Window name")
    has_activity: bool = Field(False, description="tmux activity flag")
    has_silence: bool = Field(False, description="tmux silence flag (monitor-silence elapsed)")
    is_active: bool = Field(False, description="Whether this is the session's current window")
    pane_count: int = Field(1, description="Number of panes")
    activity_timestamp: str = Field("", description="Unix time of the last activity, empty if none")
