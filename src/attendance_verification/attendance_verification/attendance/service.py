from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Optional, Sequence

from ..common.datetime_utils import Clock, elapsed, format_clock, format_short, local_clock, to_local
from ..core.constants import DEFAULT_HISTORY_LIMIT, VERIFICATION_METHOD
from ..core.enums import AttendanceStatus
from ..core.exceptions import NoOpenCheckIn, ValidationError
from ..geofence.evaluator import distance
from ..geofence.model import Coordinate, OfficeGeofence
from .factory import AttendanceStrategyFactory
from .model import AttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class AttendanceLedger:
    """Reads and writes the day's attendance record.

    The repository's unique (user_id, work_date) key and conditional check-out
    update are the source of truth; nothing here pre-checks with a read.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        *,
        geofence: Optional[OfficeGeofence] = None,
        strategy_factory: AttendanceStrategyFactory | None = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Clock] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self._attendance = attendance
        self._geofence = geofence
        self._factory = strategy_factory or AttendanceStrategyFactory()
        self._tz = tz
        self._clock = clock or local_clock(tz)
        self._history_limit = int(history_limit)

    @property
    def clock(self) -> Clock:
        return self._clock

    def work_date_for(self, at: datetime) -> date:
        return to_local(at, self._tz).date()

    def get_today(self, user_id: int, *, now: datetime | None = None) -> Optional[AttendanceRecord]:
        now = now or self._clock()
        return self._attendance.get_for_user_and_date(user_id, self.work_date_for(now))

    def get_history(self, user_id: int, limit: int | None = None) -> Sequence[AttendanceRecord]:
        limit = self._history_limit if limit is None else int(limit)
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        rows = self._attendance.get_recent_for_user(user_id, limit)
        return sorted(rows, key=lambda r: r.work_date, reverse=True)[:limit]

    def record_check_in(self, user_id: int, at: datetime, location: Optional[Coordinate]) -> AttendanceRecord:
        """
        Insert today's check-in row

        Raises:
            DuplicateCheckIn: a record already exists for this employee today
        """
        local = to_local(at, self._tz)
        work_date = local.date()

        strategy = self._factory.for_checkin(now=local)
        decision = strategy.decide_checkin(now=local)
        note = decision.note or VERIFICATION_METHOD

        lat = location.lat if location else None
        lng = location.lng if location else None
        attendance_id = self._attendance.create_checkin(
            user_id=user_id,
            work_date=work_date,
            check_in_time=local,
            status=decision.status,
            check_in_lat=lat,
            check_in_lng=lng,
            note=note,
        )
        logger.info(
            "check-in recorded user_id=%s work_date=%s status=%s",
            user_id,
            work_date,
            decision.status.value,
        )
        return AttendanceRecord(
            attendance_id=attendance_id,
            user_id=user_id,
            work_date=work_date,
            check_in_time=local,
            check_out_time=None,
            status=decision.status,
            check_in_lat=lat,
            check_in_lng=lng,
            note=note,
        )

    def record_check_out(self, user_id: int, at: datetime) -> AttendanceRecord:
        """
        Close today's open check-in

        Raises:
            NoOpenCheckIn: no check-in today, or it is already checked out
        """
        local = to_local(at, self._tz)
        work_date = local.date()

        if not self._attendance.close_open_checkin(user_id=user_id, work_date=work_date, check_out_time=local):
            raise NoOpenCheckIn()

        logger.info("check-out recorded user_id=%s work_date=%s", user_id, work_date)
        record = self._attendance.get_for_user_and_date(user_id, work_date)
        if record is None:
            raise NoOpenCheckIn()
        return record

    def get_history_ui(self, user_id: int, *, limit: int | None = None) -> list[dict]:
        return [self.to_ui(r) for r in self.get_history(user_id, limit)]

    def distance_from_office(self, record: AttendanceRecord) -> Optional[int]:
        if not self._geofence or not record.has_location:
            return None
        here = Coordinate(lat=record.check_in_lat, lng=record.check_in_lng)
        return int(round(distance(here, self._geofence.center)))

    def to_ui(self, r: AttendanceRecord, *, now: datetime | None = None) -> dict:
        label = {
            AttendanceStatus.PRESENT: "Present",
            AttendanceStatus.LATE: "Late",
            AttendanceStatus.HALF_DAY: "Half day",
            AttendanceStatus.ABSENT: "Absent",
        }.get(r.status, r.status.value)

        worked = None
        if r.check_in_time and r.check_out_time:
            worked = format_short(elapsed(r.check_in_time, r.check_out_time))
        elif r.is_open:
            worked = format_clock(elapsed(r.check_in_time, now or self._clock()))

        return {
            "id": r.attendance_id,
            "date": r.work_date.strftime("%Y-%m-%d"),
            "status": r.status.value,
            "status_label": label,
            "check_in": r.check_in_time.strftime("%H:%M:%S") if r.check_in_time else None,
            "check_out": r.check_out_time.strftime("%H:%M:%S") if r.check_out_time else None,
            "check_in_lat": r.check_in_lat,
            "check_in_lng": r.check_in_lng,
            "distance_m": self.distance_from_office(r),
            "verification_method": r.note or "Not attempted",
            "is_open": r.is_open,
            "worked": worked,
        }
