from __future__ import annotations

import math
from typing import Any

from ..core.exceptions import InvalidCoordinateError, ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def require_finite(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinateError(f"{field_name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidCoordinateError(f"{field_name} must be finite, got {value!r}")
    return number


def require_latitude(value: Any, field_name: str = "latitude") -> float:
    lat = require_finite(value, field_name)
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinateError(f"{field_name} out of range: {lat}")
    return lat


def require_longitude(value: Any, field_name: str = "longitude") -> float:
    lng = require_finite(value, field_name)
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinateError(f"{field_name} out of range: {lng}")
    return lng
