from __future__ import annotations

import asyncio
import math
import threading
import time
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Union

import pytest

from src.attendance_verification.attendance_verification.attendance.model import AttendanceRecord
from src.attendance_verification.attendance_verification.attendance.orchestrator import VerificationOrchestrator
from src.attendance_verification.attendance_verification.attendance.service import AttendanceLedger
from src.attendance_verification.attendance_verification.core.constants import EARTH_RADIUS_M
from src.attendance_verification.attendance_verification.core.enums import AttendanceStatus, FailureReason
from src.attendance_verification.attendance_verification.core.exceptions import DeviceError, DuplicateCheckIn
from src.attendance_verification.attendance_verification.geofence.model import OfficeGeofence
from src.attendance_verification.attendance_verification.verification.face_client import (
    FaceMatchClient,
    FaceServiceResponse,
)
from src.attendance_verification.attendance_verification.verification.location_probe import LocationProbe
from src.attendance_verification.attendance_verification.verification.model import (
    AuthSession,
    PositionFix,
    PositionRequest,
)

OFFICE_LAT = 28.49726565449399
OFFICE_LNG = 77.1633343946611


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryAttendance:
    """Attendance repository honoring the (user_id, work_date) unique key."""

    def __init__(self):
        self._by_user_date: dict[tuple[int, date], AttendanceRecord] = {}
        self._id = 0
        self._lock = threading.Lock()
        self.writes = 0

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        return self._by_user_date.get((user_id, work_date))

    def get_recent_for_user(self, user_id: int, limit: int):
        items = [r for r in self._by_user_date.values() if r.user_id == user_id]
        items.sort(key=lambda r: r.work_date, reverse=True)
        return items[:limit]

    def create_checkin(
        self,
        *,
        user_id: int,
        work_date: date,
        check_in_time: datetime,
        status: AttendanceStatus,
        check_in_lat=None,
        check_in_lng=None,
        note=None,
    ) -> int:
        with self._lock:
            if (user_id, work_date) in self._by_user_date:
                raise DuplicateCheckIn()
            self._id += 1
            self._by_user_date[(user_id, work_date)] = AttendanceRecord(
                attendance_id=self._id,
                user_id=user_id,
                work_date=work_date,
                check_in_time=check_in_time,
                check_out_time=None,
                status=status,
                check_in_lat=check_in_lat,
                check_in_lng=check_in_lng,
                note=note,
            )
            self.writes += 1
            return self._id

    def close_open_checkin(self, *, user_id: int, work_date: date, check_out_time: datetime) -> bool:
        with self._lock:
            rec = self._by_user_date.get((user_id, work_date))
            if rec is None or not rec.is_open:
                return False
            self._by_user_date[(user_id, work_date)] = AttendanceRecord(
                attendance_id=rec.attendance_id,
                user_id=rec.user_id,
                work_date=rec.work_date,
                check_in_time=rec.check_in_time,
                check_out_time=check_out_time,
                status=rec.status,
                check_in_lat=rec.check_in_lat,
                check_in_lng=rec.check_in_lng,
                note=rec.note,
            )
            self.writes += 1
            return True


class FakeTransport:
    """Face service double; replays scripted responses, repeating the last one."""

    def __init__(self, *responses: Union[FaceServiceResponse, Exception], delay_s: float = 0.0):
        self.delay_s = delay_s
        self.responses: List[Union[FaceServiceResponse, Exception]] = list(responses) or [
            FaceServiceResponse(face_verified=True, message="Face Verified")
        ]
        self.calls: list[dict] = []

    def compare(self, *, captured_image: str, timestamp_ms: int, bearer_token: str) -> FaceServiceResponse:
        self.calls.append(
            {"captured_image": captured_image, "timestamp_ms": timestamp_ms, "bearer_token": bearer_token}
        )
        if self.delay_s:
            time.sleep(self.delay_s)
        item = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


class FakeCamera:
    def __init__(self, *, image: str = "data:image/jpeg;base64,AAAA", open_error: Optional[FailureReason] = None):
        self.image = image
        self.open_error = open_error
        self.is_open = False
        self.opened = 0
        self.closed = 0

    async def open(self) -> None:
        if self.open_error is not None:
            raise DeviceError(self.open_error)
        self.is_open = True
        self.opened += 1

    async def capture(self) -> str:
        return self.image

    async def close(self) -> None:
        self.is_open = False
        self.closed += 1


class FakePosition:
    def __init__(
        self,
        lat: float = OFFICE_LAT,
        lng: float = OFFICE_LNG,
        *,
        accuracy_m: float = 8.0,
        error: Optional[FailureReason] = None,
        delay_s: float = 0.0,
    ):
        self.lat = lat
        self.lng = lng
        self.accuracy_m = accuracy_m
        self.error = error
        self.delay_s = delay_s
        self.requests: list[PositionRequest] = []

    async def current_position(self, request: PositionRequest) -> PositionFix:
        self.requests.append(request)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise DeviceError(self.error)
        return PositionFix(lat=self.lat, lng=self.lng, accuracy_m=self.accuracy_m)


def north_of_office(meters: float) -> float:
    """Latitude ``meters`` due north of the office."""
    return OFFICE_LAT + math.degrees(meters / EARTH_RADIUS_M)


@pytest.fixture
def fixed_now() -> datetime:
    # Monday morning, before the late cutoff
    return datetime(2025, 1, 6, 9, 15, 0)


@pytest.fixture
def clock(fixed_now) -> FixedClock:
    return FixedClock(fixed_now)


@pytest.fixture
def geofence() -> OfficeGeofence:
    return OfficeGeofence.from_settings(lat=OFFICE_LAT, lng=OFFICE_LNG, radius_m=70)


@pytest.fixture
def attendance_repo() -> InMemoryAttendance:
    return InMemoryAttendance()


@pytest.fixture
def ledger(attendance_repo, geofence, clock) -> AttendanceLedger:
    return AttendanceLedger(attendance_repo, geofence=geofence, clock=clock)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def face_client(transport, clock) -> FaceMatchClient:
    return FaceMatchClient(transport, max_retries=3, clock=clock)


@pytest.fixture
def probe(geofence) -> LocationProbe:
    return LocationProbe(geofence, timeout_s=0.5)


@pytest.fixture
def auth_session() -> AuthSession:
    return AuthSession(token="token-abc")


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def make_orchestrator(ledger, face_client, probe, camera, auth_session) -> Callable[..., VerificationOrchestrator]:
    def make(**overrides) -> VerificationOrchestrator:
        kwargs = dict(
            user_id=7,
            ledger=ledger,
            face_client=face_client,
            location_probe=probe,
            camera=camera,
            position_provider=FakePosition(),
            session=auth_session,
        )
        kwargs.update(overrides)
        return VerificationOrchestrator(**kwargs)

    return make
