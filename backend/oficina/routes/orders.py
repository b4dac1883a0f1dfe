# Overview: Flask API routes for service orders, their items, checklist and payment.

"""
Service Order API Routes

DESIGN:
- Order lifecycle: create -> accept -> ... -> services finalized -> finalize -> pay
- Status changes are permissive (PUT /status) except entering Finalized
- Items are presented deduplicated by catalog item
- Every route is scoped to the acting user's establishment
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, require_actor
from ..services import (
    checklist_service,
    order_item_service,
    order_service,
    payment_service,
)
from ..services.tenant_service import get_scoped_order
from ..validation import (
    parse_bool,
    parse_datetime,
    parse_int,
    parse_optional_int,
    require_fields,
    require_payload,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_dict(order_id: int) -> dict:
    return get_scoped_order(order_id, g.establishment_id).to_dict()


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.post("")
@orders_bp.post("/")
@api_errors
@require_actor()
def create_order_route():
    """
    Open a service order.

    Request body:
    {
        "client_id": 1,
        "vehicle_id": 3,
        "description": "Engine noise at idle",
        "responsible_id": 7,          (optional, mechanic roles only)
        "observations": "...",        (optional)
        "forecast_exit_at": "2026-10-20T18:00:00Z"  (optional)
    }
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["client_id", "vehicle_id", "description"])

    order = order_service.create_order(
        g.current_user.id,
        parse_int(data["client_id"], "client_id"),
        parse_int(data["vehicle_id"], "vehicle_id"),
        data["description"],
        responsible_id=parse_optional_int(data.get("responsible_id"), "responsible_id"),
        observations=data.get("observations"),
        forecast_exit_at=parse_datetime(data.get("forecast_exit_at"), "forecast_exit_at"),
    )
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("")
@orders_bp.get("/")
@api_errors
@require_actor()
def list_orders_route():
    orders = order_service.list_orders(g.establishment_id, status=request.args.get("status"))
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@api_errors
@require_actor()
def get_order_route(order_id: int):
    return jsonify(order_service.get_order_detail(order_id, g.establishment_id)), 200


@orders_bp.put("/<int:order_id>")
@api_errors
@require_actor()
def update_order_route(order_id: int):
    data = require_payload(request.get_json(silent=True))
    order = order_service.update_details(
        order_id,
        g.current_user.id,
        description=data.get("description"),
        observations=data.get("observations"),
        forecast_exit_at=parse_datetime(data.get("forecast_exit_at"), "forecast_exit_at"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>/status")
@api_errors
@require_actor()
def set_status_route(order_id: int):
    """
    Request body:
    {"status": "Awaiting Parts", "responsible_id": 7 (optional)}

    400 on a value outside the status enum.
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["status"])
    order = order_service.set_status(
        order_id,
        g.current_user.id,
        data["status"],
        responsible_id=parse_optional_int(data.get("responsible_id"), "responsible_id"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/accept")
@api_errors
@require_actor()
def accept_order_route(order_id: int):
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["responsible_id"])
    order = order_service.accept_pending_order(
        order_id,
        g.current_user.id,
        parse_int(data["responsible_id"], "responsible_id"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/finalize-services")
@api_errors
@require_actor()
def finalize_services_route(order_id: int):
    order = order_service.finalize_services(order_id, g.current_user.id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/finalize")
@api_errors
@require_actor()
def finalize_order_route(order_id: int):
    order = order_service.finalize_order(order_id, g.current_user.id)
    payments = payment_service.list_payments(order.id, g.establishment_id)
    return jsonify({
        "order": order.to_dict(),
        "payment": payments[0].to_dict() if payments else None,
    }), 200


@orders_bp.put("/<int:order_id>/adjustments")
@api_errors
@require_actor()
def update_adjustments_route(order_id: int):
    """Request body: {"discount": "10.00", "surcharge": "5,50"} (either optional)."""
    data = require_payload(request.get_json(silent=True))
    order = order_service.update_adjustments(
        order_id,
        g.current_user.id,
        discount=data.get("discount"),
        surcharge=data.get("surcharge"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.delete("/<int:order_id>")
@api_errors
@require_actor()
def delete_order_route(order_id: int):
    """Requires ?confirm=true (or {"confirm": true})."""
    data = require_payload(request.get_json(silent=True))
    confirm = parse_bool(request.args.get("confirm", data.get("confirm", False)))
    result = order_service.delete_order(order_id, g.current_user.id, confirm=confirm)
    return jsonify(result), 200


# =============================================================================
# ITEMS
# =============================================================================

@orders_bp.get("/<int:order_id>/items")
@api_errors
@require_actor()
def list_items_route(order_id: int):
    order = get_scoped_order(order_id, g.establishment_id)
    return jsonify({
        "items": order_item_service.list_items(order.id),
        "subtotal_cents": order_item_service.compute_subtotal(order.id),
    }), 200


@orders_bp.post("/<int:order_id>/items")
@api_errors
@require_actor()
def add_item_route(order_id: int):
    """
    Request body:
    {"item_id": 12, "quantity": 2}

    409 if the service is already on the order or lines are frozen.
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["item_id"])
    item = order_item_service.add_item(
        order_id,
        g.current_user.id,
        parse_int(data["item_id"], "item_id"),
        data.get("quantity", 1),
    )
    return jsonify({"item": item.to_dict(), "order": _order_dict(order_id)}), 201


@orders_bp.delete("/<int:order_id>/items/<int:line_id>")
@api_errors
@require_actor()
def remove_item_route(order_id: int, line_id: int):
    result = order_item_service.remove_item(order_id, g.current_user.id, line_id)
    result["order"] = _order_dict(order_id)
    return jsonify(result), 200


# =============================================================================
# CHECKLIST
# =============================================================================

@orders_bp.get("/<int:order_id>/checklist")
@api_errors
@require_actor()
def list_checklist_route(order_id: int):
    items = checklist_service.list_items(order_id, g.establishment_id)
    return jsonify({"checklist": [i.to_dict() for i in items]}), 200


@orders_bp.post("/<int:order_id>/checklist")
@api_errors
@require_actor()
def add_checklist_route(order_id: int):
    data = require_payload(request.get_json(silent=True))
    item = checklist_service.add_item(
        order_id,
        g.current_user.id,
        data.get("description"),
        priority=data.get("priority"),
    )
    return jsonify({"checklist_item": item.to_dict()}), 201


@orders_bp.put("/<int:order_id>/checklist/<int:item_id>")
@api_errors
@require_actor()
def update_checklist_route(order_id: int, item_id: int):
    data = require_payload(request.get_json(silent=True))
    item = checklist_service.update_item(order_id, item_id, g.current_user.id, data)
    return jsonify({"checklist_item": item.to_dict()}), 200


@orders_bp.post("/<int:order_id>/checklist/<int:item_id>/toggle")
@api_errors
@require_actor()
def toggle_checklist_route(order_id: int, item_id: int):
    item = checklist_service.toggle_item(order_id, item_id, g.current_user.id)
    return jsonify({"checklist_item": item.to_dict()}), 200


@orders_bp.delete("/<int:order_id>/checklist/<int:item_id>")
@api_errors
@require_actor()
def delete_checklist_route(order_id: int, item_id: int):
    return jsonify(checklist_service.delete_item(order_id, item_id, g.current_user.id)), 200


# =============================================================================
# PAYMENT
# =============================================================================

@orders_bp.get("/<int:order_id>/payments")
@api_errors
@require_actor()
def list_payments_route(order_id: int):
    payments = payment_service.list_payments(order_id, g.establishment_id)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


@orders_bp.post("/<int:order_id>/payment")
@api_errors
@require_actor()
def settle_payment_route(order_id: int):
    """
    Settle a finalized order into the open cash session.

    Request body: {"method": "pix"}
    409 when no cash session is open or the order is already paid.
    """
    data = require_payload(request.get_json(silent=True))
    require_fields(data, ["method"])
    payment = payment_service.settle_payment(order_id, g.current_user.id, data["method"])
    return jsonify({"payment": payment.to_dict(), "order": _order_dict(order_id)}), 200
