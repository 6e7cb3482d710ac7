import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_db_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = False
AUTO_SEED_DB = False

OFFICE_LAT = 28.49726565449399
OFFICE_LNG = 77.1633343946611
OFFICE_RADIUS_M = 70.0

TIMEZONE = "Asia/Kolkata"
LATE_CUTOFF_HOUR = 10
HISTORY_LIMIT = 30

FACE_SERVICE_URL = "http://face.test/api/verify-face"
FACE_MAX_RETRIES = 3
FACE_TIMEOUT_SECONDS = 1.0
FACE_COUNT_TRANSPORT_FAILURES = True

LOCATION_TIMEOUT_SECONDS = 1.0
LOCATION_MAX_FIX_AGE_SECONDS = 30.0
FLOW_IDLE_SECONDS = 1800.0
