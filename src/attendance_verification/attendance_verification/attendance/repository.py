from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus
from .model import AttendanceRecord


class AttendanceRepository(Protocol):
    """Persistence boundary for attendance rows.

    Implementations must enforce uniqueness of (user_id, work_date) atomically
    and make the check-out update conditional on ``check_out_time IS NULL``.
    """

    def get_recent_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

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
        """Insert today's row.

        Raises:
            DuplicateCheckIn: a row already exists for (user_id, work_date)
        """
        raise NotImplementedError

    def close_open_checkin(self, *, user_id: int, work_date: date, check_out_time: datetime) -> bool:
        """Set check_out_time only where a check-in exists and check-out is unset.

        Returns False when no row matched.
        """
        raise NotImplementedError
