from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TerminalCategory(str, Enum):
    """What kind of process a terminal hosts."""

    AGENT = "agent"
    CONSOLE = "console"
    TEST = "test"
    PRERUN = "prerun"
    MAIN = "main"


class BackendKind(str, Enum):
    """Backend that renders a terminal."""

    TMUX = "tmux"
    HOST = "host"


class Capability(str, Enum):
    """Optional features a terminal backend can offer."""

    ACTIVITY_MONITORING = "activity_monitoring"
    BUFFER_READING = "buffer_reading"
    IDLE_DETECTION = "idle_detection"


class ActivityPhase(str, Enum):
    """Internal phase of the per-window activity state machine."""

    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"
    GRACE = "grace"


class ActivityStatus(str, Enum):
    """Coarse activity status reported to callers."""

    ACTIVE = "active"
    IDLE = "idle"


class ActivityState(BaseModel):
    """Activity record for one window; is_active and is_idle are exclusive."""

    model_config = ConfigDict(frozen=True)

    is_active: bool = False
    is_idle: bool = True
    last_checked: float = Field(..., description="Monitor clock reading at the last tick")
    last_activity_detected: Optional[float] = Field(None, description="Monitor clock reading of the last new activity")
    phase: ActivityPhase = ActivityPhase.IDLE


class TerminalOptions(BaseModel):
    """Options accepted by create_terminal."""

    name: str = Field(..., description="Window name, following the naming grammar")
    category: TerminalCategory = Field(TerminalCategory.CONSOLE, description="Terminal category")
    cwd: Optional[str] = Field(None, description="Working directory (defaults to the workspace path)")
    env: Optional[Dict[str, str]] = Field(None, description="Extra environment variables")
    message: Optional[str] = Field(None, description="Initial comment line written to the terminal")
    feature_key: Optional[str] = Field(None, description="Associated feature, None for global terminals")
    is_base: bool = Field(False, description="Base window that is recreated when closed externally")
    show: bool = Field(False, description="Surface the terminal after creation")
    preserve_focus: bool = Field(False, description="Keep focus where it is when showing")
