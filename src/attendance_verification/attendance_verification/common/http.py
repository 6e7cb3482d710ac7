from __future__ import annotations

import inspect
import logging
from functools import wraps
from typing import Any, Tuple

from flask import jsonify, session

from ..core.exceptions import AuthenticationError, DomainError, FlowStateError, LedgerConflict, ReasonedError

logger = logging.getLogger(__name__)


def status_for(exc: DomainError) -> int:
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, (FlowStateError, LedgerConflict)):
        return 409
    return 400


def error_response(exc: DomainError) -> Tuple[Any, int]:
    body = {"success": False, "message": str(exc)}
    if isinstance(exc, ReasonedError):
        body["reason"] = exc.reason.value
    return jsonify(body), status_for(exc)


def server_error() -> Tuple[Any, int]:
    logger.exception("unhandled error in request")
    return jsonify({"success": False, "message": "Internal server error"}), 500


def _unauthorized() -> Tuple[Any, int]:
    return jsonify({"success": False, "message": "Please sign in to continue"}), 401


def login_required(view):
    """Session guard for JSON endpoints: 401 instead of a redirect."""

    if inspect.iscoroutinefunction(view):

        @wraps(view)
        async def async_wrapper(*args, **kwargs):
            if "user_id" not in session:
                return _unauthorized()
            return await view(*args, **kwargs)

        return async_wrapper

    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return _unauthorized()
        return view(*args, **kwargs)

    return wrapper
