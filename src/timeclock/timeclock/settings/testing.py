import os
import tempfile
from pathlib import Path

from .base import *  # noqa: F401,F403

DEBUG = False
TESTING = True

LOCAL_STORE_PATH = Path(os.getenv("LOCAL_STORE_PATH", str(Path(tempfile.gettempdir()) / "timeclock_test_store.json")))
INITIAL_SYNC_DELAY_SECONDS = 0.0
LOG_LEVEL = "DEBUG"

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
