import logging
import os
import sys
from datetime import datetime

from agent_mux.constants import ENV_PREFIX, LOG_DIR


def setup_logging() -> None:
    """Setup logging to a dated file under LOG_DIR and to stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    log_level = os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper()
    log_file = LOG_DIR / f"agent-mux_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_file), logging.StreamHandler(sys.stderr)],
    )

    print(f"agent-mux logs: {log_file}", file=sys.stderr)
    logging.info(f"Logging to {log_file} at level {log_level}")
