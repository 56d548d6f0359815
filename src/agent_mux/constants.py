"""Constants for agent-mux."""

from pathlib import Path

APP_NAME = "agentmux"
ENV_PREFIX = "AGENT_MUX_"

# Backend identity, used as the prefix of terminal ids ("tmux-3")
TMUX_BACKEND = "tmux"
TMUX_BINARY = "tmux"

# Session defaults
DEFAULT_SESSION_NAME = APP_NAME
DEFAULT_WORKSPACE_NAME = "default"

# Reserved placeholder window seeded at session creation
INIT_WINDOW_NAME = "init"

# Activity monitoring (seconds)
DEFAULT_ACTIVITY_TIMEOUT = 5
DEFAULT_MONITORING_INTERVAL = 1.0
DEFAULT_ACTIVE_DELAY = 1.5

# Reconciliation and base window recreation (seconds)
DEFAULT_CLEANUP_INTERVAL = 5.0
DEFAULT_BASE_RECREATE_DELAY = 0.1

# Control mode
CONTROL_EVENT_MARKER = "%"
CONTROL_STOP_GRACE = 1.0

# Buffer capture
DEFAULT_CAPTURE_INTERVAL = 1.0

# Local directories
AGENT_MUX_HOME_DIR = Path.home() / ".agent-mux"
LOG_DIR = AGENT_MUX_HOME_DIR / "logs"
