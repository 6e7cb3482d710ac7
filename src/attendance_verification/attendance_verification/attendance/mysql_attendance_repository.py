from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Any, Dict, Optional, Sequence

import mysql.connector

from ..core.enums import AttendanceStatus
from ..core.exceptions import DuplicateCheckIn
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_db_datetime, is_duplicate_key, to_db_datetime
from .model import AttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)

_COLUMNS = (
    "attendance_id, user_id, work_date, check_in_time, check_out_time, status, "
    "check_in_lat, check_in_lng, note"
)


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, tz: Optional[tzinfo] = None):
        self._conn_factory = conn_factory
        self._tz = tz

    def _to_record(self, r: Dict[str, Any]) -> AttendanceRecord:
        lat = r.get("check_in_lat")
        lng = r.get("check_in_lng")
        return AttendanceRecord(
            attendance_id=int(r["attendance_id"]),
            user_id=int(r["user_id"]),
            work_date=r["work_date"],
            check_in_time=from_db_datetime(r.get("check_in_time"), self._tz),
            check_out_time=from_db_datetime(r.get("check_out_time"), self._tz),
            status=AttendanceStatus(r["status"]),
            check_in_lat=float(lat) if lat is not None else None,
            check_in_lng=float(lng) if lng is not None else None,
            note=r.get("note"),
        )

    def get_recent_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_records
                WHERE user_id=%s
                ORDER BY work_date DESC
                LIMIT %s
                """,
                (user_id, int(limit)),
            )
            return [self._to_record(r) for r in fetchall(cur)]

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_records
                WHERE user_id=%s AND work_date=%s
                """,
                (user_id, work_date),
            )
            r = fetchone(cur)
            if not r:
                return None
            return self._to_record(r)

    def create_checkin(
        self,
        *,
        user_id: int,
        work_date: date,
        check_in_time: datetime,
        status: AttendanceStatus,
        check_in_lat: Optional[float],
        check_in_lng: Optional[float],
        note: Optional[str] = None,
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(user_id, work_date, check_in_time, status, check_in_lat, check_in_lng, note)
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        user_id,
                        work_date,
                        to_db_datetime(check_in_time, self._tz),
                        status.value,
                        check_in_lat,
                        check_in_lng,
                        note,
                    ),
                )
                return int(cur.lastrowid)
        except mysql.connector.Error as exc:
            if is_duplicate_key(exc):
                logger.info("duplicate check-in rejected user_id=%s work_date=%s", user_id, work_date)
                raise DuplicateCheckIn() from exc
            raise

    def close_open_checkin(self, *, user_id: int, work_date: date, check_out_time: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET check_out_time=%s
                WHERE user_id=%s AND work_date=%s
                  AND check_in_time IS NOT NULL
                  AND check_out_time IS NULL
                """,
                (to_db_datetime(check_out_time, self._tz), user_id, work_date),
            )
            return cur.rowcount > 0
