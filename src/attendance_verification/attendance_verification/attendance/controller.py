from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Flask, jsonify, request, session

from ..common.http import error_response, login_required, server_error
from ..core.enums import FlowType
from ..core.exceptions import DomainError, ValidationError
from ..container import Container
from ..verification.camera import SubmittedCapture
from ..verification.face_client import session_from_bearer
from ..verification.location_probe import SubmittedPosition
from ..verification.model import LocationSample, VerificationAttempt
from .flow import FlowState


def _attempt_to_dict(a: VerificationAttempt) -> Dict[str, Any]:
    return {
        "status": a.status.value,
        "attempt_count": a.attempt_count,
        "failure_reason": a.failure_reason.value if a.failure_reason else None,
        "failure_category": a.failure_reason.category.value if a.failure_reason else None,
        "message": a.message,
    }


def _sample_to_dict(s: Optional[LocationSample]) -> Optional[Dict[str, Any]]:
    if s is None:
        return None
    return {
        "lat": s.lat,
        "lng": s.lng,
        "accuracy_m": s.accuracy_m,
        "distance_m": s.rounded_distance_m,
        "radius_m": s.radius_m,
        "within_radius": s.within_radius,
    }


def flow_state_to_dict(state: FlowState) -> Dict[str, Any]:
    return {
        "flow": state.flow.value if state.flow else None,
        "step": state.step.value,
        "face": _attempt_to_dict(state.face),
        "location": _attempt_to_dict(state.location),
        "sample": _sample_to_dict(state.sample),
        "committing": state.committing,
        "escalated": state.escalated,
        "retries_left": state.retries_left,
        "can_confirm": state.can_confirm,
        "ledger_failure": state.ledger_failure.value if state.ledger_failure else None,
        "ledger_message": state.ledger_message,
    }


def _parse_flow(value: Any) -> FlowType:
    try:
        return FlowType(str(value))
    except ValueError:
        raise ValidationError("flow must be 'check_in' or 'check_out'") from None


def _parse_limit(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError("limit must be an integer") from None


def register(app: Flask, container: Container) -> None:
    ledger = container.ledger

    def current_user_id() -> int:
        return int(session["user_id"])

    def flow_response(state: FlowState, status: int = 200):
        return jsonify({"success": status < 400, "flow": flow_state_to_dict(state)}), status

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    @login_required
    def attendance_today():
        try:
            record = ledger.get_today(current_user_id())
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()

        return jsonify({
            "success": True,
            "today": ledger.to_ui(record) if record else None,
            "can_check_in": record is None,
            "can_check_out": bool(record and record.is_open),
        }), 200

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    @login_required
    def attendance_history():
        try:
            limit = _parse_limit(request.args.get("limit"))
            data = ledger.get_history_ui(current_user_id(), limit=limit)
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()
        return jsonify({"success": True, "history": data}), 200

    @app.route("/api/attendance/flow", methods=["GET"], endpoint="flow_state")
    @login_required
    def flow_state():
        return flow_response(container.flows.get(current_user_id()).state)

    @app.route("/api/attendance/flow", methods=["POST"], endpoint="flow_start")
    @login_required
    async def flow_start():
        data = request.get_json(silent=True) or {}
        orchestrator = container.flows.get(current_user_id())
        try:
            state = await orchestrator.start(_parse_flow(data.get("flow")))
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()
        return flow_response(state)

    @app.route("/api/attendance/flow", methods=["DELETE"], endpoint="flow_cancel")
    @login_required
    def flow_cancel():
        return flow_response(container.flows.get(current_user_id()).cancel())

    @app.route("/api/attendance/flow/face", methods=["POST"], endpoint="flow_face")
    @login_required
    async def flow_face():
        data = request.get_json(silent=True) or {}
        orchestrator = container.flows.get(current_user_id())
        try:
            state = await orchestrator.verify_face(
                camera=SubmittedCapture(data.get("capturedImage")),
                session=session_from_bearer(request.headers.get("Authorization")),
            )
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()
        return flow_response(state)

    @app.route("/api/attendance/flow/face/retry", methods=["POST"], endpoint="flow_face_retry")
    @login_required
    def flow_face_retry():
        try:
            state = container.flows.get(current_user_id()).retry_face()
        except DomainError as e:
            return error_response(e)
        return flow_response(state)

    @app.route("/api/attendance/flow/location", methods=["POST"], endpoint="flow_location")
    @login_required
    async def flow_location():
        data = request.get_json(silent=True) or {}
        orchestrator = container.flows.get(current_user_id())
        provider = SubmittedPosition(
            data,
            clock=ledger.clock,
            max_fix_age_s=container.location_max_fix_age_s,
        )
        try:
            state = await orchestrator.verify_location(provider=provider)
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()
        return flow_response(state)

    @app.route("/api/attendance/flow/confirm", methods=["POST"], endpoint="flow_confirm")
    @login_required
    async def flow_confirm():
        orchestrator = container.flows.get(current_user_id())
        try:
            state = await orchestrator.confirm()
        except DomainError as e:
            return error_response(e)
        except Exception:
            return server_error()

        if state.ledger_failure is not None:
            return flow_response(state, 409)

        today = orchestrator.today
        return jsonify({
            "success": True,
            "flow": flow_state_to_dict(state),
            "today": ledger.to_ui(today) if today else None,
        }), 200
