"""
Location probe - one fresh device fix evaluated against the office geofence
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Protocol, Union

from ..common.datetime_utils import Clock, now_local
from ..core.constants import DEFAULT_LOCATION_MAX_FIX_AGE_SECONDS, DEFAULT_LOCATION_TIMEOUT_SECONDS
from ..core.enums import FailureReason
from ..core.exceptions import DeviceError, InvalidCoordinateError
from ..geofence.evaluator import distance, is_within_radius
from ..geofence.model import Coordinate, OfficeGeofence
from .model import LocationFailure, LocationSample, PositionFix, PositionRequest

logger = logging.getLogger(__name__)

ProbeResult = Union[LocationSample, LocationFailure]

_DEVICE_REASONS = {
    FailureReason.PERMISSION_DENIED,
    FailureReason.POSITION_UNAVAILABLE,
    FailureReason.GEO_TIMEOUT,
    FailureReason.UNSUPPORTED,
}


class PositionProvider(Protocol):
    async def current_position(self, request: PositionRequest) -> PositionFix:
        """Return one position fix honoring ``request``.

        Raises:
            DeviceError: PERMISSION_DENIED, POSITION_UNAVAILABLE, GEO_TIMEOUT or UNSUPPORTED
        """
        raise NotImplementedError


class LocationProbe:
    def __init__(self, geofence: OfficeGeofence, *, timeout_s: float = DEFAULT_LOCATION_TIMEOUT_SECONDS):
        self._geofence = geofence
        self._timeout_s = float(timeout_s)

    @property
    def geofence(self) -> OfficeGeofence:
        return self._geofence

    async def probe(self, provider: Optional[PositionProvider]) -> ProbeResult:
        """
        Request a single fresh high-accuracy fix and evaluate it

        Returns:
            LocationSample: position determined (may still be out of radius)
            LocationFailure: position could not be determined
        """
        if provider is None:
            return _failure(FailureReason.UNSUPPORTED)

        request = PositionRequest(high_accuracy=True, timeout_s=self._timeout_s, maximum_age_s=0.0)
        try:
            fix = await asyncio.wait_for(provider.current_position(request), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            logger.info("location probe timed out after %.1fs", self._timeout_s)
            return _failure(FailureReason.GEO_TIMEOUT)
        except DeviceError as exc:
            reason = exc.reason if exc.reason in _DEVICE_REASONS else FailureReason.POSITION_UNAVAILABLE
            logger.info("location probe failed: %s", reason.value)
            return LocationFailure(reason=reason, message=str(exc))

        try:
            here = Coordinate(lat=fix.lat, lng=fix.lng)
        except InvalidCoordinateError as exc:
            logger.warning("location provider returned an invalid fix: %s", exc)
            return _failure(FailureReason.POSITION_UNAVAILABLE)

        meters = distance(here, self._geofence.center)
        sample = LocationSample(
            lat=here.lat,
            lng=here.lng,
            accuracy_m=float(fix.accuracy_m),
            distance_from_office_m=meters,
            within_radius=is_within_radius(here, self._geofence, meters=meters),
            radius_m=self._geofence.radius_m,
        )
        logger.info(
            "location probe: %.0fm from office (radius %.0fm, accuracy %.0fm)",
            meters,
            self._geofence.radius_m,
            sample.accuracy_m,
        )
        return sample


def _failure(reason: FailureReason) -> LocationFailure:
    return LocationFailure(reason=reason, message=reason.default_message)


_CLIENT_ERROR_CODES = {
    "permission_denied": FailureReason.PERMISSION_DENIED,
    "position_unavailable": FailureReason.POSITION_UNAVAILABLE,
    "timeout": FailureReason.GEO_TIMEOUT,
    "unsupported": FailureReason.UNSUPPORTED,
}


class SubmittedPosition(PositionProvider):
    """Position provider for fixes taken by the browser and posted to the API.

    The browser reports either ``{latitude, longitude, accuracy, timestamp}``
    or ``{error: permission_denied|position_unavailable|timeout|unsupported}``.
    Fixes older than ``max_fix_age_s`` are rejected as stale.
    """

    def __init__(
        self,
        payload: Mapping[str, Any],
        *,
        clock: Clock = now_local,
        max_fix_age_s: float = DEFAULT_LOCATION_MAX_FIX_AGE_SECONDS,
    ):
        self._payload = payload
        self._clock = clock
        self._max_fix_age_s = float(max_fix_age_s)

    async def current_position(self, request: PositionRequest) -> PositionFix:
        error = self._payload.get("error")
        if error:
            reason = _CLIENT_ERROR_CODES.get(str(error).lower(), FailureReason.POSITION_UNAVAILABLE)
            raise DeviceError(reason)

        lat = self._payload.get("latitude")
        lng = self._payload.get("longitude")
        if lat is None or lng is None:
            raise DeviceError(FailureReason.POSITION_UNAVAILABLE)

        captured_at = self._captured_at()
        if captured_at is not None:
            now = self._clock()
            allowed = max(request.maximum_age_s, self._max_fix_age_s)
            if abs(now - captured_at) > timedelta(seconds=allowed):
                raise DeviceError(FailureReason.POSITION_UNAVAILABLE, "Location fix is stale. Please try again.")

        return PositionFix(
            lat=lat,
            lng=lng,
            accuracy_m=float(self._payload.get("accuracy") or 0.0),
            captured_at=captured_at,
        )

    def _captured_at(self) -> Optional[datetime]:
        ts = self._payload.get("timestamp")
        if ts is None:
            return None
        tz = self._clock().tzinfo
        try:
            return datetime.fromtimestamp(float(ts) / 1000.0, tz=tz)
        except (TypeError, ValueError, OverflowError, OSError):
            raise DeviceError(FailureReason.POSITION_UNAVAILABLE) from None
