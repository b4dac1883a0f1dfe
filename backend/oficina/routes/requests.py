# Overview: Flask API routes for requests attached to a service order.

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, require_actor
from ..services import request_service
from ..services.tenant_service import get_scoped_order
from ..validation import parse_optional_int, require_fields, require_payload


requests_bp = Blueprint("requests", __name__, url_prefix="/api/orders/<int:order_id>/requests")


def _response(order_id: int, req, status: int = 200):
    """Request plus the parent order, whose status may have moved."""
    order = get_scoped_order(order_id, g.establishment_id)
    return jsonify({"request": req.to_dict(), "order": order.to_dict()}), status


@requests_bp.get("")
@requests_bp.get("/")
@api_errors
@require_actor()
def list_requests_route(order_id: int):
    items = request_service.list_requests(order_id, g.establishment_id, status=request.args.get("status"))
    return jsonify({"requests": [r.to_dict() for r in items]}), 200


@requests_bp.get("/<int:request_id>")
@api_errors
@require_actor()
def get_request_route(order_id: int, request_id: int):
    req = request_service.get_request(order_id, request_id, g.establishment_id)
    return jsonify({"request": req.to_dict()}), 200


@requests_bp.post("")
@requests_bp.post("/")
@api_errors
@require_actor()
def create_request_route(order_id: int):
    """
    Request body:
    {
        "subject": "Brake pads",
        "type": "part",                 (part, approval, payment, information, other)
        "description": "Front pads for ...",
        "recipient_id": 4,              (optional; omitted = whole shop)
        "priority": "High"              (optional, default Medium)
    }
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["subject", "type", "description"])
    req = request_service.create_request(
        order_id,
        g.current_user.id,
        subject=data["subject"],
        request_type=data["type"],
        description=data["description"],
        recipient_id=parse_optional_int(data.get("recipient_id"), "recipient_id"),
        priority=data.get("priority"),
    )
    return _response(order_id, req, 201)


@requests_bp.put("/<int:request_id>")
@api_errors
@require_actor()
def update_request_route(order_id: int, request_id: int):
    """
    {"status": "Finished"} moves the request (accept/reject semantics);
    other fields edit it. Edits and the move are saved together or not at all.
    """
    data = require_payload(request.get_json(silent=True))
    fields = {k: data[k] for k in ("subject", "description", "priority") if k in data}
    if "recipient_id" in data:
        fields["recipient_id"] = parse_optional_int(data["recipient_id"], "recipient_id")
    status = data.get("status")

    if not fields and status in (None, ""):
        req = request_service.get_request(order_id, request_id, g.establishment_id)
    else:
        req = request_service.update_request(order_id, request_id, g.current_user.id, fields, status=status)
    return _response(order_id, req)


@requests_bp.post("/<int:request_id>/accept")
@api_errors
@require_actor()
def accept_request_route(order_id: int, request_id: int):
    req = request_service.accept_request(order_id, request_id, g.current_user.id)
    return _response(order_id, req)


@requests_bp.post("/<int:request_id>/reject")
@api_errors
@require_actor()
def reject_request_route(order_id: int, request_id: int):
    req = request_service.reject_request(order_id, request_id, g.current_user.id)
    return _response(order_id, req)


@requests_bp.delete("/<int:request_id>")
@api_errors
@require_actor()
def delete_request_route(order_id: int, request_id: int):
    result = request_service.delete_request(order_id, request_id, g.current_user.id)
    result["order"] = get_scoped_order(order_id, g.establishment_id).to_dict()
    return jsonify(result), 200
