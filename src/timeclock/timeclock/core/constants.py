"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_TICK_SECONDS = 1
DEFAULT_SNAPSHOT_INTERVAL_SECONDS = 10
DEFAULT_SYNC_INTERVAL_SECONDS = 120
DEFAULT_VISIBILITY_SYNC_THROTTLE_SECONDS = 60
DEFAULT_INITIAL_SYNC_DELAY_SECONDS = 3
DEFAULT_START_TIME_DRIFT_MINUTES = 10
DEFAULT_SESSION_MAX_AGE_HOURS = 24
DEFAULT_LOCATION_TIMEOUT_SECONDS = 10
DEFAULT_LOCATION_MAX_AGE_SECONDS = 300
DEFAULT_STORAGE_NAMESPACE = "timeclock_"
