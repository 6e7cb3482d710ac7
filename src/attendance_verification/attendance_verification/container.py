from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from types import ModuleType
from typing import Optional

from .attendance.factory import AttendanceStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.orchestrator import FlowRegistry, VerificationOrchestrator
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceLedger
from .common.datetime_utils import get_timezone, local_clock
from .core import constants
from .database.connection import DBConfig, DatabaseConnection
from .geofence.model import OfficeGeofence
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService
from .verification.face_client import FaceMatchClient, HttpFaceVerificationTransport
from .verification.location_probe import LocationProbe


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    users_repo: UserRepository
    attendance_repo: AttendanceRepository

    auth_service: AuthService
    ledger: AttendanceLedger
    face_client: FaceMatchClient
    location_probe: LocationProbe
    flows: FlowRegistry

    location_max_fix_age_s: float = constants.DEFAULT_LOCATION_MAX_FIX_AGE_SECONDS


def make_flows(
    ledger: AttendanceLedger,
    face_client: FaceMatchClient,
    location_probe: LocationProbe,
    *,
    idle_ttl_s: float = constants.DEFAULT_FLOW_IDLE_SECONDS,
) -> FlowRegistry:
    def factory(user_id: int) -> VerificationOrchestrator:
        return VerificationOrchestrator(
            user_id=user_id,
            ledger=ledger,
            face_client=face_client,
            location_probe=location_probe,
        )

    return FlowRegistry(factory, idle_ttl_s=idle_ttl_s)


def build_container(settings: ModuleType) -> Container:
    def setting(name: str, default=None):
        return getattr(settings, name, default)

    conn = DatabaseConnection.get_instance(DBConfig.from_dict(setting("DB_CONFIG", {})))
    tz = get_timezone(setting("TIMEZONE"))

    geofence = OfficeGeofence.from_settings(
        lat=float(setting("OFFICE_LAT")),
        lng=float(setting("OFFICE_LNG")),
        radius_m=float(setting("OFFICE_RADIUS_M", constants.DEFAULT_OFFICE_RADIUS_M)),
    )

    users_repo = MySQLUserRepository(conn)
    attendance_repo = MySQLAttendanceRepository(conn, tz=tz)

    auth_service = AuthService(users_repo)
    ledger = AttendanceLedger(
        attendance_repo,
        geofence=geofence,
        strategy_factory=AttendanceStrategyFactory(
            late_cutoff=time(int(setting("LATE_CUTOFF_HOUR", constants.DEFAULT_LATE_CUTOFF_HOUR)), 0),
        ),
        tz=tz,
        history_limit=int(setting("HISTORY_LIMIT", constants.DEFAULT_HISTORY_LIMIT)),
    )

    face_timeout = float(setting("FACE_TIMEOUT_SECONDS", constants.DEFAULT_FACE_TIMEOUT_SECONDS))
    face_client = FaceMatchClient(
        HttpFaceVerificationTransport(str(setting("FACE_SERVICE_URL")), timeout=face_timeout),
        max_retries=int(setting("FACE_MAX_RETRIES", constants.DEFAULT_FACE_MAX_RETRIES)),
        count_transport_failures=bool(setting("FACE_COUNT_TRANSPORT_FAILURES", True)),
        # outer bound; the HTTP timeout normally fires first
        call_timeout=face_timeout + 5.0,
        clock=local_clock(tz),
    )
    location_probe = LocationProbe(
        geofence,
        timeout_s=float(setting("LOCATION_TIMEOUT_SECONDS", constants.DEFAULT_LOCATION_TIMEOUT_SECONDS)),
    )

    return Container(
        conn=conn,
        users_repo=users_repo,
        attendance_repo=attendance_repo,
        auth_service=auth_service,
        ledger=ledger,
        face_client=face_client,
        location_probe=location_probe,
        flows=make_flows(
            ledger,
            face_client,
            location_probe,
            idle_ttl_s=float(setting("FLOW_IDLE_SECONDS", constants.DEFAULT_FLOW_IDLE_SECONDS)),
        ),
        location_max_fix_age_s=float(
            setting("LOCATION_MAX_FIX_AGE_SECONDS", constants.DEFAULT_LOCATION_MAX_FIX_AGE_SECONDS)
        ),
    )
