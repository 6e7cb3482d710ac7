from __future__ import annotations

from enum import Enum


class AttendanceStatus(str, Enum):
    """Stored status of a day's attendance record."""

    ABSENT = "absent"
    PRESENT = "present"
    LATE = "late"
    HALF_DAY = "half_day"


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class FlowType(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class FlowStep(str, Enum):
    DISCLAIMER = "disclaimer"
    FACE = "face"
    LOCATION = "location"
    CONFIRMATION = "confirmation"


class Factor(str, Enum):
    FACE = "face"
    LOCATION = "location"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFYING = "verifying"
    SUCCESS = "success"
    FAILED = "failed"


class FailureCategory(str, Enum):
    DEVICE = "device"
    VERIFICATION = "verification"
    AUTH = "auth"
    TRANSPORT = "transport"
    GEOFENCE = "geofence"
    LEDGER = "ledger"


class FailureReason(str, Enum):
    """Typed reason codes for every way a flow step can fail."""

    CAMERA_UNAVAILABLE = "camera_unavailable"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    GEO_TIMEOUT = "geo_timeout"
    UNSUPPORTED = "unsupported"

    FACE_MISMATCH = "face_mismatch"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"

    SESSION_EXPIRED = "session_expired"
    SERVICE_UNAVAILABLE = "service_unavailable"

    OUT_OF_RADIUS = "out_of_radius"

    DUPLICATE_CHECK_IN = "duplicate_check_in"
    NO_OPEN_CHECK_IN = "no_open_check_in"

    @property
    def category(self) -> FailureCategory:
        return _CATEGORIES[self]

    @property
    def default_message(self) -> str:
        return _MESSAGES[self]


_CATEGORIES = {
    FailureReason.CAMERA_UNAVAILABLE: FailureCategory.DEVICE,
    FailureReason.PERMISSION_DENIED: FailureCategory.DEVICE,
    FailureReason.POSITION_UNAVAILABLE: FailureCategory.DEVICE,
    FailureReason.GEO_TIMEOUT: FailureCategory.DEVICE,
    FailureReason.UNSUPPORTED: FailureCategory.DEVICE,
    FailureReason.FACE_MISMATCH: FailureCategory.VERIFICATION,
    FailureReason.MAX_RETRIES_EXCEEDED: FailureCategory.VERIFICATION,
    FailureReason.SESSION_EXPIRED: FailureCategory.AUTH,
    FailureReason.SERVICE_UNAVAILABLE: FailureCategory.TRANSPORT,
    FailureReason.OUT_OF_RADIUS: FailureCategory.GEOFENCE,
    FailureReason.DUPLICATE_CHECK_IN: FailureCategory.LEDGER,
    FailureReason.NO_OPEN_CHECK_IN: FailureCategory.LEDGER,
}

_MESSAGES = {
    FailureReason.CAMERA_UNAVAILABLE: "Unable to access camera. Please grant camera permission and try again.",
    FailureReason.PERMISSION_DENIED: "Location permission denied. Please enable location access.",
    FailureReason.POSITION_UNAVAILABLE: "Location information unavailable. Move to a spot with better signal.",
    FailureReason.GEO_TIMEOUT: "Location request timed out. Please try again.",
    FailureReason.UNSUPPORTED: "Geolocation is not supported by this device.",
    FailureReason.FACE_MISMATCH: "Face verification failed. Please ensure good lighting and try again.",
    FailureReason.MAX_RETRIES_EXCEEDED: "Maximum verification attempts reached. Please contact your administrator.",
    FailureReason.SESSION_EXPIRED: "Your session has expired. Please sign in again.",
    FailureReason.SERVICE_UNAVAILABLE: "Face verification service unavailable. Please try again.",
    FailureReason.OUT_OF_RADIUS: "You are outside the office radius.",
    FailureReason.DUPLICATE_CHECK_IN: "Attendance has already been marked for today.",
    FailureReason.NO_OPEN_CHECK_IN: "There is no open check-in to close for today.",
}
