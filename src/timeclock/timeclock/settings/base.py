import os
from pathlib import Path

from ..core import constants


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_optional_float(name: str):
    value = os.getenv(name)
    return float(value) if value not in (None, "") else None


DATA_DIR = Path(os.getenv("TIMECLOCK_HOME", str(Path.home() / ".timeclock")))

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "timeclock_db"),
}

# Durable local store
LOCAL_STORE_PATH = Path(os.getenv("LOCAL_STORE_PATH", str(DATA_DIR / "local_store.json")))
STORAGE_NAMESPACE = os.getenv("STORAGE_NAMESPACE", constants.DEFAULT_STORAGE_NAMESPACE)

# Session state machine and reconciliation
TICK_SECONDS = _env_float("TICK_SECONDS", constants.DEFAULT_TICK_SECONDS)
SNAPSHOT_INTERVAL_SECONDS = _env_float("SNAPSHOT_INTERVAL_SECONDS", constants.DEFAULT_SNAPSHOT_INTERVAL_SECONDS)
SYNC_INTERVAL_SECONDS = _env_float("SYNC_INTERVAL_SECONDS", constants.DEFAULT_SYNC_INTERVAL_SECONDS)
VISIBILITY_SYNC_THROTTLE_SECONDS = _env_float(
    "VISIBILITY_SYNC_THROTTLE_SECONDS", constants.DEFAULT_VISIBILITY_SYNC_THROTTLE_SECONDS
)
INITIAL_SYNC_DELAY_SECONDS = _env_float("INITIAL_SYNC_DELAY_SECONDS", constants.DEFAULT_INITIAL_SYNC_DELAY_SECONDS)
START_TIME_DRIFT_MINUTES = _env_float("START_TIME_DRIFT_MINUTES", constants.DEFAULT_START_TIME_DRIFT_MINUTES)
SESSION_MAX_AGE_HOURS = _env_float("SESSION_MAX_AGE_HOURS", constants.DEFAULT_SESSION_MAX_AGE_HOURS)

# Location capture
LOCATION_TIMEOUT_SECONDS = _env_float("LOCATION_TIMEOUT_SECONDS", constants.DEFAULT_LOCATION_TIMEOUT_SECONDS)
LOCATION_MAX_AGE_SECONDS = _env_float("LOCATION_MAX_AGE_SECONDS", constants.DEFAULT_LOCATION_MAX_AGE_SECONDS)
KIOSK_LATITUDE = _env_optional_float("KIOSK_LATITUDE")
KIOSK_LONGITUDE = _env_optional_float("KIOSK_LONGITUDE")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("LOG_DIR", str(DATA_DIR / "logs")))
LOG_CONSOLE = bool(int(os.getenv("LOG_CONSOLE", "0")))

DEBUG = False
AUTO_INIT_DB = False
