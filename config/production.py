import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_db"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
AUTO_SEED_DB = bool(int(os.getenv("AUTO_SEED_DB", "0")))

OFFICE_LAT = float(os.getenv("OFFICE_LAT", "28.49726565449399"))
OFFICE_LNG = float(os.getenv("OFFICE_LNG", "77.1633343946611"))
OFFICE_RADIUS_M = float(os.getenv("OFFICE_RADIUS_M", "70"))

TIMEZONE = os.getenv("TIMEZONE", "Asia/Kolkata")
LATE_CUTOFF_HOUR = int(os.getenv("LATE_CUTOFF_HOUR", "10"))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "30"))

FACE_SERVICE_URL = os.getenv("FACE_SERVICE_URL", "https://face.internal/api/verify-face")
FACE_MAX_RETRIES = int(os.getenv("FACE_MAX_RETRIES", "3"))
FACE_TIMEOUT_SECONDS = float(os.getenv("FACE_TIMEOUT_SECONDS", "15"))
FACE_COUNT_TRANSPORT_FAILURES = bool(int(os.getenv("FACE_COUNT_TRANSPORT_FAILURES", "1")))

LOCATION_TIMEOUT_SECONDS = float(os.getenv("LOCATION_TIMEOUT_SECONDS", "10"))
LOCATION_MAX_FIX_AGE_SECONDS = float(os.getenv("LOCATION_MAX_FIX_AGE_SECONDS", "30"))

# Verification flows untouched this long are dropped
FLOW_IDLE_SECONDS = float(os.getenv("FLOW_IDLE_SECONDS", "1800"))
