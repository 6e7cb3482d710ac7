"""Check-in / check-out verification flow as an explicit state machine.

``FlowState`` is immutable; ``transition`` is pure and rejects any event that
is not valid for the current step, so combinations such as "confirmation
reached while face is failed" cannot be built.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Union

from ..core.constants import DEFAULT_FACE_MAX_RETRIES
from ..core.enums import Factor, FailureReason, FlowStep, FlowType, VerificationStatus
from ..core.exceptions import FlowStateError
from ..verification.model import LocationFailure, LocationSample, VerificationAttempt
from .model import AttendanceRecord

_BUDGETED = {FailureReason.FACE_MISMATCH, FailureReason.SERVICE_UNAVAILABLE}


def _face() -> VerificationAttempt:
    return VerificationAttempt(factor=Factor.FACE)


def _location() -> VerificationAttempt:
    return VerificationAttempt(factor=Factor.LOCATION)


@dataclass(frozen=True)
class FlowState:
    flow: Optional[FlowType] = None
    step: FlowStep = FlowStep.DISCLAIMER
    face: VerificationAttempt = field(default_factory=_face)
    location: VerificationAttempt = field(default_factory=_location)
    sample: Optional[LocationSample] = None
    committing: bool = False
    ledger_failure: Optional[FailureReason] = None
    ledger_message: Optional[str] = None
    max_retries: int = DEFAULT_FACE_MAX_RETRIES

    @property
    def in_progress(self) -> bool:
        return self.step is not FlowStep.DISCLAIMER

    @property
    def escalated(self) -> bool:
        """Face budget exhausted: only leaving the flow is possible."""
        return (
            self.face.status is VerificationStatus.FAILED
            and self.face.failure_reason is FailureReason.MAX_RETRIES_EXCEEDED
        )

    @property
    def is_fatal(self) -> bool:
        return self.escalated or self.ledger_failure is not None

    @property
    def retries_left(self) -> int:
        return max(self.max_retries - self.face.attempt_count, 0)

    @property
    def can_confirm(self) -> bool:
        return (
            self.step is FlowStep.CONFIRMATION
            and self.face.status is VerificationStatus.SUCCESS
            and self.location.status is VerificationStatus.SUCCESS
            and not self.committing
            and self.ledger_failure is None
        )


@dataclass(frozen=True)
class Started:
    flow: FlowType
    today: Optional[AttendanceRecord]


@dataclass(frozen=True)
class FaceVerifying:
    attempt: VerificationAttempt


@dataclass(frozen=True)
class FaceResolved:
    attempt: VerificationAttempt


@dataclass(frozen=True)
class FaceRetry:
    pass


@dataclass(frozen=True)
class LocationVerifying:
    pass


@dataclass(frozen=True)
class LocationResolved:
    result: Union[LocationSample, LocationFailure]


@dataclass(frozen=True)
class Committing:
    pass


@dataclass(frozen=True)
class Committed:
    pass


@dataclass(frozen=True)
class CommitFailed:
    reason: FailureReason
    message: str


@dataclass(frozen=True)
class Reset:
    pass


FlowEvent = Union[
    Started,
    FaceVerifying,
    FaceResolved,
    FaceRetry,
    LocationVerifying,
    LocationResolved,
    Committing,
    Committed,
    CommitFailed,
    Reset,
]


def can_start(flow: FlowType, today: Optional[AttendanceRecord]) -> bool:
    if flow is FlowType.CHECK_IN:
        return today is None
    return today is not None and today.is_open


def out_of_radius_message(sample: LocationSample) -> str:
    return (
        f"You are {sample.rounded_distance_m}m away from the office. "
        f"Please move within {int(round(sample.radius_m))}m radius."
    )


def _require(state: FlowState, step: FlowStep, event: FlowEvent) -> None:
    if state.step is not step:
        raise FlowStateError(f"{type(event).__name__} is not allowed in step '{state.step.value}'")


def transition(state: FlowState, event: FlowEvent) -> FlowState:
    initial = FlowState(max_retries=state.max_retries)

    if isinstance(event, Reset):
        return initial

    if isinstance(event, Started):
        if state.in_progress:
            raise FlowStateError("A verification flow is already in progress")
        if not can_start(event.flow, event.today):
            if event.flow is FlowType.CHECK_IN:
                raise FlowStateError("Attendance has already been marked for today")
            raise FlowStateError("There is no open check-in to check out from today")
        return replace(initial, flow=event.flow, step=FlowStep.FACE)

    if isinstance(event, FaceVerifying):
        _require(state, FlowStep.FACE, event)
        if state.escalated or state.face.status not in (VerificationStatus.PENDING, VerificationStatus.FAILED):
            raise FlowStateError("Face verification cannot start now")
        return replace(state, face=event.attempt)

    if isinstance(event, FaceResolved):
        _require(state, FlowStep.FACE, event)
        if state.face.status is VerificationStatus.SUCCESS:
            raise FlowStateError("Face verification already succeeded")
        attempt = event.attempt
        if attempt.status is VerificationStatus.SUCCESS:
            return replace(state, step=FlowStep.LOCATION, face=attempt, location=_location())
        if attempt.failure_reason in _BUDGETED and attempt.attempt_count >= state.max_retries:
            attempt = attempt.failed(FailureReason.MAX_RETRIES_EXCEEDED)
        return replace(state, face=attempt)

    if isinstance(event, FaceRetry):
        _require(state, FlowStep.FACE, event)
        if state.escalated:
            raise FlowStateError(FailureReason.MAX_RETRIES_EXCEEDED.default_message)
        if state.face.status is not VerificationStatus.FAILED:
            raise FlowStateError("Nothing to retry")
        return replace(state, face=state.face.pending())

    if isinstance(event, LocationVerifying):
        _require(state, FlowStep.LOCATION, event)
        if state.location.status is VerificationStatus.VERIFYING:
            raise FlowStateError("Location check already in progress")
        return replace(state, location=state.location.verifying(count=True), sample=None)

    if isinstance(event, LocationResolved):
        _require(state, FlowStep.LOCATION, event)
        if state.location.status is not VerificationStatus.VERIFYING:
            raise FlowStateError("No location check in progress")
        result = event.result
        if isinstance(result, LocationFailure):
            return replace(state, location=state.location.failed(result.reason, result.message), sample=None)
        if result.within_radius:
            return replace(
                state,
                step=FlowStep.CONFIRMATION,
                location=state.location.succeeded(),
                sample=result,
            )
        return replace(
            state,
            location=state.location.failed(FailureReason.OUT_OF_RADIUS, out_of_radius_message(result)),
            sample=result,
        )

    if isinstance(event, Committing):
        _require(state, FlowStep.CONFIRMATION, event)
        if not state.can_confirm:
            raise FlowStateError("Attendance cannot be confirmed now")
        return replace(state, committing=True)

    if isinstance(event, Committed):
        _require(state, FlowStep.CONFIRMATION, event)
        return initial

    if isinstance(event, CommitFailed):
        _require(state, FlowStep.CONFIRMATION, event)
        return replace(state, committing=False, ledger_failure=event.reason, ledger_message=event.message)

    raise FlowStateError(f"Unknown event {event!r}")
