from __future__ import annotations

from .enums import FailureReason


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidCoordinateError(ValidationError):
    """Raised for NaN or otherwise non-finite coordinates."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class SessionExpiredError(AuthenticationError):
    """Raised when the bearer credential is missing, expired or rejected."""


class FlowStateError(DomainError):
    """Raised when an action is not allowed in the current flow state."""


class ReasonedError(DomainError):
    """Domain error carrying a typed failure reason."""

    reason: FailureReason

    def __init__(self, message: str | None = None):
        super().__init__(message or self.reason.default_message)


class LedgerConflict(ReasonedError):
    """Persistence precondition violated; never retried automatically."""


class DuplicateCheckIn(LedgerConflict):
    reason = FailureReason.DUPLICATE_CHECK_IN


class NoOpenCheckIn(LedgerConflict):
    reason = FailureReason.NO_OPEN_CHECK_IN


class DeviceError(ReasonedError):
    """Camera or positioning failure reported by a device adapter."""

    def __init__(self, reason: FailureReason, message: str | None = None):
        self.reason = reason
        super().__init__(message)


class TransportError(DomainError):
    """Network or service failure while calling an external service."""
