from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one attendance row per (employee, calendar date)."""

    attendance_id: int
    user_id: int
    work_date: date
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    status: AttendanceStatus
    check_in_lat: Optional[float] = None
    check_in_lng: Optional[float] = None
    note: Optional[str] = None

    @property
    def is_open(self) -> bool:
        """Checked in and not yet checked out."""
        return self.check_in_time is not None and self.check_out_time is None

    @property
    def has_location(self) -> bool:
        return self.check_in_lat is not None and self.check_in_lng is not None
