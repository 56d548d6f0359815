"""Window naming grammar.

The window name is the only place a terminal's feature and category survive a
restart of the host process, so names are built and parsed here and nowhere
else:

    agent: {feature}-{command}   interactive agent (feature = text before the last dash)
    console: {feature}           console
    test: {feature}              test runner
    prerun ({feature})           pre-run
    base - agentmux              global base window
    init                         bootstrap placeholder, never a terminal
"""

import re
from typing import NamedTuple, Optional

from agent_mux.constants import APP_NAME, INIT_WINDOW_NAME
from agent_mux.models.terminal import TerminalCategory

AGENT_PREFIX = "agent: "
CONSOLE_PREFIX = "console: "
TEST_PREFIX = "test: "

_PRERUN_PATTERN = re.compile(r"^prerun \((.+)\)$")


class ParsedWindowName(NamedTuple):
    feature_key: Optional[str]
    category: TerminalCategory
    is_global_base: bool = False


def agent_window_name(feature_key: str, command: str) -> str:
    return f"{AGENT_PREFIX}{feature_key}-{command}"


def console_window_name(feature_key: str) -> str:
    return f"{CONSOLE_PREFIX}{feature_key}"


def runner_window_name(feature_key: str) -> str:
    return f"{TEST_PREFIX}{feature_key}"


def prerun_window_name(feature_key: str) -> str:
    return f"prerun ({feature_key})"


def global_base_window_name(app_name: str = APP_NAME) -> str:
    return f"base - {app_name}"


def is_init_window(name: str) -> bool:
    return name == INIT_WINDOW_NAME


def parse_window_name(name: str, app_name: str = APP_NAME) -> ParsedWindowName:
    """Recover feature key and category from a window name."""
    if name.startswith(AGENT_PREFIX):
        rest = name[len(AGENT_PREFIX):]
        # Feature keys may contain dashes; the command never does
        dash = rest.rfind("-")
        if dash > 0:
            return ParsedWindowName(rest[:dash], TerminalCategory.AGENT)

    if name.startswith(CONSOLE_PREFIX) and len(name) > len(CONSOLE_PREFIX):
        return ParsedWindowName(name[len(CONSOLE_PREFIX):], TerminalCategory.CONSOLE)

    if name.startswith(TEST_PREFIX) and len(name) > len(TEST_PREFIX):
        return ParsedWindowName(name[len(TEST_PREFIX):], TerminalCategory.TEST)

    match = _PRERUN_PATTERN.match(name)
    if match:
        return ParsedWindowName(match.group(1), TerminalCategory.PRERUN)

    if name == global_base_window_name(app_name):
        return ParsedWindowName(None, TerminalCategory.MAIN, is_global_base=True)

    return ParsedWindowName(None, TerminalCategory.CONSOLE)
