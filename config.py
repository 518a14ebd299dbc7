"""Configuration settings for ClockedIn."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Explicitly load from the project root so .env is found regardless of cwd
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"{name}={raw!r} is not an integer, using {default}")
        return default


APP_NAME = "ClockedIn"

# Storage
DB_PATH = os.getenv("CLOCKEDIN_DB_PATH", "clockedin.db")

# Logging
LOG_LEVEL = os.getenv("CLOCKEDIN_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Timer
ABORT_MIN_ELAPSED_SEC = _int_env("CLOCKEDIN_ABORT_MIN_SEC", 30)  # shorter aborts are discarded
DEFAULT_DURATION_MIN = _int_env("CLOCKEDIN_DEFAULT_MINUTES", 25)
MIN_DURATION_MIN = 1
MAX_DURATION_MIN = 180

# Notifications
NOTIFICATION_KIND = "timer_completion"
NOTIFICATION_TITLE = "Timer Completed!"
NOTIFICATION_TIMEOUT_SEC = 10
