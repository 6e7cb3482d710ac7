"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_M = 6_371_000
SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_OFFICE_RADIUS_M = 70
DEFAULT_LATE_CUTOFF_HOUR = 10
DEFAULT_HISTORY_LIMIT = 30

DEFAULT_FACE_MAX_RETRIES = 3
DEFAULT_FACE_TIMEOUT_SECONDS = 15.0
DEFAULT_LOCATION_TIMEOUT_SECONDS = 10.0
DEFAULT_LOCATION_MAX_FIX_AGE_SECONDS = 30.0
SESSION_TICK_SECONDS = 1.0
DEFAULT_FLOW_IDLE_SECONDS = 30 * 60

VERIFICATION_METHOD = "Face + Geo-fence"
