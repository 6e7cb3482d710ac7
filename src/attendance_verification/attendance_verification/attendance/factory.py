from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time

from ..core.constants import DEFAULT_LATE_CUTOFF_HOUR
from .strategies.base import AttendanceStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.present_strategy import PresentStrategy


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose the check-in status strategy from the cutoff policy."""

    late_cutoff: time = time(DEFAULT_LATE_CUTOFF_HOUR, 0)

    def for_checkin(self, *, now: datetime) -> AttendanceStrategy:
        if now.time().replace(tzinfo=None) >= self.late_cutoff:
            return LateStrategy()
        return PresentStrategy()
