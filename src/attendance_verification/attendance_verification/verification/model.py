from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ..core.enums import Factor, FailureReason, VerificationStatus


@dataclass(frozen=True)
class VerificationAttempt:
    """Transient progress of one verification factor within one flow."""

    factor: Factor
    status: VerificationStatus = VerificationStatus.PENDING
    attempt_count: int = 0
    failure_reason: Optional[FailureReason] = None
    message: Optional[str] = None

    def verifying(self, *, count: bool = False) -> "VerificationAttempt":
        return replace(
            self,
            status=VerificationStatus.VERIFYING,
            attempt_count=self.attempt_count + (1 if count else 0),
            failure_reason=None,
            message=None,
        )

    def succeeded(self, message: Optional[str] = None) -> "VerificationAttempt":
        return replace(self, status=VerificationStatus.SUCCESS, failure_reason=None, message=message)

    def failed(self, reason: FailureReason, message: Optional[str] = None, *, refund: bool = False) -> "VerificationAttempt":
        count = self.attempt_count - 1 if refund and self.attempt_count > 0 else self.attempt_count
        return replace(
            self,
            status=VerificationStatus.FAILED,
            attempt_count=count,
            failure_reason=reason,
            message=message or reason.default_message,
        )

    def pending(self) -> "VerificationAttempt":
        return replace(self, status=VerificationStatus.PENDING, failure_reason=None, message=None)


@dataclass(frozen=True)
class AuthSession:
    """Bearer credential of the signed-in employee."""

    token: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        if not self.token:
            return True
        if self.expires_at is None:
            return False
        if self.expires_at.tzinfo is None and now.tzinfo is not None:
            now = now.replace(tzinfo=None)
        return now >= self.expires_at


@dataclass(frozen=True)
class PositionRequest:
    high_accuracy: bool = True
    timeout_s: float = 10.0
    maximum_age_s: float = 0.0


@dataclass(frozen=True)
class PositionFix:
    """Raw device position before geofence evaluation."""

    lat: float
    lng: float
    accuracy_m: float
    captured_at: Optional[datetime] = None


@dataclass(frozen=True)
class LocationSample:
    lat: float
    lng: float
    accuracy_m: float
    distance_from_office_m: float
    within_radius: bool
    radius_m: float

    @property
    def rounded_distance_m(self) -> int:
        return int(round(self.distance_from_office_m))


@dataclass(frozen=True)
class LocationFailure:
    """Location could not be determined at all."""

    reason: FailureReason
    message: str
