# Overview: Flask API routes for the cash session ledger (till open/close, movements).

"""
Cash Session API Routes

DESIGN:
- One open session per establishment; a second open is 409
- Amounts arrive as units ("130.00", "130,00", 130) plus an optional
  denomination breakdown {"50": 2, "0.25": 4}; only the total is stored
- Movements and close answer with the updated session totals
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, require_actor
from ..money import non_negative_cents, sum_denominations, to_cents
from ..services import cash_service
from ..validation import parse_optional_int, require_fields, require_payload


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


def _amount_with_denominations(data: dict, field: str) -> int:
    typed = data.get(field)
    cents = non_negative_cents(typed, field) if typed not in (None, "") else 0
    return cents + sum_denominations(data.get("denominations"))


@cash_sessions_bp.post("")
@cash_sessions_bp.post("/")
@api_errors
@require_actor("opened_by")
def open_session_route():
    """
    Open the till.

    Request body:
    {
        "establishment_id": 1,      (optional, defaults to the actor's)
        "opening_value": "100.00",
        "opened_by": 3,             (or X-User-Id header)
        "denominations": {"50": 1}  (optional)
    }
    """
    data = require_payload(request.get_json(silent=True))
    if data.get("opening_value") in (None, "") and not data.get("denominations"):
        require_fields(data, ["opening_value"])

    establishment_id = parse_optional_int(data.get("establishment_id"), "establishment_id") or g.establishment_id
    session = cash_service.open_session(
        establishment_id,
        g.current_user.id,
        _amount_with_denominations(data, "opening_value"),
        notes=data.get("notes"),
    )
    return jsonify({"session": session.to_dict()}), 201


@cash_sessions_bp.get("")
@cash_sessions_bp.get("/")
@api_errors
@require_actor()
def list_sessions_route():
    limit = request.args.get("limit", 50, type=int)
    sessions = cash_service.list_sessions(
        g.establishment_id,
        status=request.args.get("status"),
        limit=max(1, min(limit, 500)),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@cash_sessions_bp.get("/open")
@api_errors
@require_actor()
def open_session_status_route():
    session = cash_service.get_open_session(g.establishment_id)
    return jsonify({
        "open": session is not None,
        "session": session.to_dict() if session else None,
    }), 200


@cash_sessions_bp.get("/<int:session_id>")
@api_errors
@require_actor()
def get_session_route(session_id: int):
    return jsonify(cash_service.get_session_detail(session_id, g.establishment_id)), 200


@cash_sessions_bp.post("/<int:session_id>/movements")
@api_errors
@require_actor("user_id")
def record_movement_route(session_id: int):
    """
    Request body:
    {"type": "entry" | "exit", "value": "50.00", "description": "Change fund"}
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["type", "value", "description"])
    session, movement = cash_service.record_movement(
        session_id,
        data["type"],
        to_cents(data["value"], "value"),
        data["description"],
        g.current_user.id,
    )
    return jsonify({"session": session.to_dict(), "movement": movement.to_dict()}), 201


@cash_sessions_bp.put("/<int:session_id>/close")
@api_errors
@require_actor("closed_by")
def close_session_route(session_id: int):
    """
    Request body:
    {"closing_value": "130.00", "closed_by": 3, "denominations": {...} (optional)}

    Response carries balance_total and difference (closing - balance).
    """
    data = require_payload(request.get_json(silent=True))
    if data.get("closing_value") in (None, "") and not data.get("denominations"):
        require_fields(data, ["closing_value"])
    session = cash_service.close_session(
        session_id,
        _amount_with_denominations(data, "closing_value"),
        g.current_user.id,
        notes=data.get("notes"),
    )
    return jsonify({"session": session.to_dict()}), 200
