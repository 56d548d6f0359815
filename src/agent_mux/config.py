"""Terminal provider configuration."""

import os
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from agent_mux.constants import (
    DEFAULT_ACTIVE_DELAY,
    DEFAULT_ACTIVITY_TIMEOUT,
    DEFAULT_BASE_RECREATE_DELAY,
    DEFAULT_CLEANUP_INTERVAL,
    DEFAULT_MONITORING_INTERVAL,
    DEFAULT_SESSION_NAME,
    DEFAULT_WORKSPACE_NAME,
    ENV_PREFIX,
)

ProviderKind = Literal["tmux", "auto"]

_UNSAFE_SESSION_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def sanitize_workspace_name(name: str) -> str:
    """Make a workspace name safe for use inside a tmux session name."""
    return _UNSAFE_SESSION_CHARS.sub("_", name) or DEFAULT_WORKSPACE_NAME


class TerminalConfig(BaseModel):
    """Settings for the tmux terminal provider."""

    provider: ProviderKind = Field("auto", description="Backend selection: tmux, or auto-detect")
    session_name: str = Field(DEFAULT_SESSION_NAME, description="tmux session name prefix")
    workspace_name: str = Field(DEFAULT_WORKSPACE_NAME, description="Workspace identity appended to the session name")
    workspace_path: str = Field(default_factory=os.getcwd, description="Working directory for base windows")
    socket_name: Optional[str] = Field(None, description="tmux socket name (tmux -L)")
    activity_timeout: int = Field(DEFAULT_ACTIVITY_TIMEOUT, description="Grace period and monitor-silence seconds")
    monitoring_interval: float = Field(DEFAULT_MONITORING_INTERVAL, description="Activity poll interval in seconds")
    active_delay: float = Field(DEFAULT_ACTIVE_DELAY, description="Sustained activity required before a window is active")
    cleanup_interval: float = Field(DEFAULT_CLEANUP_INTERVAL, description="Reconciliation interval in seconds")
    base_recreate_delay: float = Field(DEFAULT_BASE_RECREATE_DELAY, description="Delay before recreating a closed base window")
    use_control_mode: bool = Field(False, description="Use tmux control mode (-C) instead of polling")
    mouse_mode: bool = Field(True, description="Enable tmux mouse handling in created windows")

    @property
    def full_session_name(self) -> str:
        """Session name including the sanitized workspace identity."""
        return f"{self.session_name}-{sanitize_workspace_name(self.workspace_name)}"

    def validate_settings(self) -> List[str]:
        """Return human-readable warnings for out-of-range settings."""
        warnings = []
        if self.activity_timeout < 1 or self.activity_timeout > 300:
            warnings.append("activity_timeout should be between 1 and 300 seconds")
        if self.monitoring_interval < 0.1 or self.monitoring_interval > 10:
            warnings.append("monitoring_interval should be between 0.1 and 10 seconds")
        return warnings

    @classmethod
    def from_env(cls, **overrides) -> "TerminalConfig":
        """Build a config from AGENT_MUX_* environment variables.

        Explicit keyword overrides win over the environment; ``None`` values
        are ignored so CLI options can be passed through unconditionally.
        """
        values = {}
        for name, field in cls.model_fields.items():
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if field.annotation is bool:
                values[name] = raw.strip().lower() in _TRUE_VALUES
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
