"""
Service Order State Machine

WHY: An order is the unit of work of the shop, from vehicle intake to
payment. Its status moves by explicit commands and, indirectly, by its
part requests (Awaiting Parts <-> In Progress).

DESIGN PRINCIPLES:
- Status values are a closed enum (OrderStatus); unknown values are rejected
- set_status is permissive: any status may follow any other, except that
  Finalized is only entered through finalize_order
- Finalizing creates the order's payment in the same transaction
- Every command commits once; failures leave no partial state
"""

from __future__ import annotations

import random
import time

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import ServiceOrder, OrderItem, OrderRequest, ChecklistItem, Payment
from ..models.enums import (
    OrderStatus,
    RequestType,
    PaymentStatus,
    CLOSED_ORDER_STATUSES,
    OUTSTANDING_REQUEST_STATUSES,
)
from oficina.money import non_negative_cents
from oficina.time_utils import utcnow
from oficina.validation import Conflict, InvalidTransition, ValidationError, parse_enum, parse_text
from . import events
from .concurrency import run_with_retry
from .order_item_service import list_items, refresh_order_total
from .payment_service import ensure_generated_payment
from .tenant_service import (
    get_actor,
    get_scoped_client,
    get_scoped_order,
    get_scoped_vehicle,
    require_establishment,
    require_responsible,
)


CODE_ATTEMPTS = 10


# =============================================================================
# HELPERS
# =============================================================================

def _generate_code() -> str:
    prefix = current_app.config.get("ORDER_CODE_PREFIX", "OS")
    for _ in range(CODE_ATTEMPTS):
        code = f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"
        if not db.session.query(ServiceOrder.id).filter_by(code=code).first():
            return code
    raise Conflict("Could not generate a unique order code")


def _event_payload(order: ServiceOrder, **extra) -> dict:
    payload = {
        "code": order.code,
        "status": order.status,
        "responsible_id": order.responsible_id,
        "opened_by": order.opened_by_user_id,
    }
    payload.update(extra)
    return payload


def _publish(name: str, order: ServiceOrder, actor_id: int | None, **extra) -> None:
    events.publish(
        name,
        establishment_id=order.establishment_id,
        entity_type="service_order",
        entity_id=order.id,
        actor_user_id=actor_id,
        payload=_event_payload(order, **extra),
    )


def apply_status(order: ServiceOrder, new_status: OrderStatus, actor_id: int | None) -> bool:
    """
    Move a loaded (locked) order to new_status and publish the matching event.

    Does not commit. Returns False when the order is already in new_status.
    Finalized is not reachable here; use finalize_order.
    """
    old_status = order.status
    if old_status == new_status.value:
        return False

    if old_status == OrderStatus.FINALIZED.value:
        current_app.logger.warning(
            "Order %s leaves Finalized for '%s' (actor %s)", order.code, new_status.value, actor_id
        )

    order.status = new_status.value
    current_app.logger.info("Order %s: '%s' -> '%s'", order.code, old_status, new_status.value)

    if new_status == OrderStatus.SERVICES_FINALIZED:
        _publish(events.ORDER_SERVICES_FINALIZED, order, actor_id, previous_status=old_status)
    else:
        _publish(events.ORDER_STATUS_CHANGED, order, actor_id, previous_status=old_status)
    return True


def has_outstanding_part_requests(order_id: int) -> bool:
    outstanding = sorted(OUTSTANDING_REQUEST_STATUSES)
    query = db.session.query(OrderRequest.id).filter(
        OrderRequest.order_id == order_id,
        OrderRequest.type == RequestType.PART.value,
        or_(OrderRequest.status.in_(outstanding), OrderRequest.status.is_(None)),
    )
    return query.first() is not None


def reevaluate_awaiting_parts(order: ServiceOrder, actor_id: int | None) -> bool:
    """
    Return an order from Awaiting Parts to In Progress once no part request
    is outstanding. Does not commit. Returns True if the status changed.
    """
    if order.status != OrderStatus.AWAITING_PARTS.value:
        return False
    db.session.flush()
    if has_outstanding_part_requests(order.id):
        return False
    return apply_status(order, OrderStatus.IN_PROGRESS, actor_id)


# =============================================================================
# COMMANDS
# =============================================================================

def create_order(
    actor_id: int,
    client_id: int,
    vehicle_id: int,
    description,
    *,
    responsible_id: int | None = None,
    observations=None,
    forecast_exit_at=None,
) -> ServiceOrder:
    """
    Open a new service order in status Pending.

    Args:
        actor_id: Staff member opening the order
        client_id: Client owning the vehicle
        vehicle_id: Vehicle under repair (must belong to client)
        description: Reported problem / requested work
        responsible_id: Optional mechanic assigned up front
        forecast_exit_at: Optional expected delivery (datetime)
    """
    description = parse_text(description, "description")
    observations = parse_text(observations, "observations", required=False)

    def _op():
        actor = get_actor(actor_id)
        establishment = require_establishment(actor.establishment_id)
        client = get_scoped_client(client_id, establishment.id)
        vehicle = get_scoped_vehicle(vehicle_id, establishment.id)
        if vehicle.client_id != client.id:
            raise ValidationError("Vehicle does not belong to client")
        if responsible_id is not None:
            require_responsible(responsible_id, establishment.id)

        order = ServiceOrder(
            establishment_id=establishment.id,
            code=_generate_code(),
            client_id=client.id,
            vehicle_id=vehicle.id,
            description=description,
            observations=observations,
            responsible_id=responsible_id,
            status=OrderStatus.PENDING.value,
            opened_by_user_id=actor.id,
            opened_at=utcnow(),
            forecast_exit_at=forecast_exit_at,
            discount_cents=0,
            surcharge_cents=0,
            subtotal_cents=0,
            total_cents=0,
        )
        db.session.add(order)
        db.session.flush()

        _publish(events.ORDER_CREATED, order, actor.id)
        db.session.commit()

        current_app.logger.info("Order %s opened by user %s", order.code, actor.id)
        return order

    return run_with_retry(_op)


def set_status(order_id: int, actor_id: int, new_status, responsible_id: int | None = None) -> ServiceOrder:
    """
    Explicit status change from the order screen.

    Any target is accepted except that Finalized delegates to
    finalize_order (which requires Services Finalized).
    """
    target = parse_enum(OrderStatus, new_status, "status")

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)

        if responsible_id is not None and responsible_id != order.responsible_id:
            require_responsible(responsible_id, order.establishment_id)
            order.responsible_id = responsible_id

        if target == OrderStatus.FINALIZED and order.status != OrderStatus.FINALIZED.value:
            _finalize_locked(order, actor.id)
        else:
            apply_status(order, target, actor.id)

        db.session.commit()
        return order

    return run_with_retry(_op)


def accept_pending_order(order_id: int, actor_id: int, responsible_id: int) -> ServiceOrder:
    """Pending -> In Progress, assigning the responsible mechanic."""
    if responsible_id is None:
        raise ValidationError("responsible_id is required")

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(
                f"Only pending orders can be accepted (current status '{order.status}')"
            )
        require_responsible(responsible_id, order.establishment_id)
        order.responsible_id = responsible_id
        apply_status(order, OrderStatus.IN_PROGRESS, actor.id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def finalize_services(order_id: int, actor_id: int) -> ServiceOrder:
    """
    Toggle between Services Finalized and Service Reopened.

    From any open status the order moves to Services Finalized; from
    Services Finalized it moves to Service Reopened.
    """
    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        if order.status in CLOSED_ORDER_STATUSES:
            raise InvalidTransition(f"Order is '{order.status}'; services cannot be finalized")

        if order.status == OrderStatus.SERVICES_FINALIZED.value:
            apply_status(order, OrderStatus.SERVICE_REOPENED, actor.id)
        else:
            apply_status(order, OrderStatus.SERVICES_FINALIZED, actor.id)

        db.session.commit()
        return order

    return run_with_retry(_op)


def _finalize_locked(order: ServiceOrder, actor_id: int) -> Payment:
    if order.status != OrderStatus.SERVICES_FINALIZED.value:
        raise InvalidTransition(
            f"Order must be 'Services Finalized' to be finalized (current status '{order.status}')"
        )
    previous = order.status
    refresh_order_total(order)
    order.status = OrderStatus.FINALIZED.value
    order.closed_at = utcnow()
    order.closed_by_user_id = actor_id

    payment = ensure_generated_payment(order)
    _publish(
        events.ORDER_FINALIZED,
        order,
        actor_id,
        previous_status=previous,
        total_cents=order.total_cents,
        payment_id=payment.id,
    )
    current_app.logger.info(
        "Order %s finalized by user %s (total %s cents)", order.code, actor_id, order.total_cents
    )
    return payment


def finalize_order(order_id: int, actor_id: int) -> ServiceOrder:
    """
    Services Finalized -> Finalized.

    Stamps closed_at/closed_by, freezes the total and makes the order
    collectible by creating its GENERATED payment (attached to the open
    cash session when there is one).

    Raises:
        InvalidTransition: order is not in Services Finalized
    """
    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        _finalize_locked(order, actor.id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_adjustments(order_id: int, actor_id: int, *, discount=None, surcharge=None) -> ServiceOrder:
    """Set discount and/or surcharge (amounts in units) and recompute the total."""
    discount_cents = non_negative_cents(discount, "discount") if discount not in (None, "") else None
    surcharge_cents = non_negative_cents(surcharge, "surcharge") if surcharge not in (None, "") else None

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        if order.status in CLOSED_ORDER_STATUSES:
            raise Conflict(f"Order is '{order.status}'; adjustments are frozen")

        if discount_cents is not None:
            order.discount_cents = discount_cents
        if surcharge_cents is not None:
            order.surcharge_cents = surcharge_cents
        refresh_order_total(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_details(order_id: int, actor_id: int, *, description=None, observations=None, forecast_exit_at=None) -> ServiceOrder:
    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        if order.status in CLOSED_ORDER_STATUSES:
            raise Conflict(f"Order is '{order.status}' and cannot be edited")
        if description is not None:
            order.description = parse_text(description, "description")
        if observations is not None:
            order.observations = parse_text(observations, "observations", required=False)
        if forecast_exit_at is not None:
            order.forecast_exit_at = forecast_exit_at
        db.session.commit()
        return order

    return run_with_retry(_op)


def delete_order(order_id: int, actor_id: int, *, confirm: bool = False) -> dict:
    """
    Delete an order with its items, requests, checklist and unpaid payments.

    Requires confirm=True. An order with a settled payment is kept.
    """
    if not confirm:
        raise ValidationError("Order deletion must be confirmed")

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)

        paid = db.session.query(Payment.id).filter_by(
            order_id=order.id, status=PaymentStatus.PAID.value
        ).first()
        if paid:
            raise Conflict("Order has a settled payment and cannot be deleted")

        _publish(events.ORDER_DELETED, order, actor.id)

        counts = {
            "items": db.session.query(OrderItem).filter_by(order_id=order.id).delete(synchronize_session=False),
            "requests": db.session.query(OrderRequest).filter_by(order_id=order.id).delete(synchronize_session=False),
            "checklist": db.session.query(ChecklistItem).filter_by(order_id=order.id).delete(synchronize_session=False),
            "payments": db.session.query(Payment).filter_by(order_id=order.id).delete(synchronize_session=False),
        }
        code = order.code
        db.session.delete(order)
        db.session.commit()

        current_app.logger.info("Order %s deleted by user %s (%s)", code, actor.id, counts)
        return {"deleted": True, "order_id": order_id, "code": code, "cascade": counts}

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_orders(establishment_id: int, *, status=None) -> list[ServiceOrder]:
    query = db.session.query(ServiceOrder).filter_by(establishment_id=establishment_id)
    if status not in (None, ""):
        query = query.filter_by(status=parse_enum(OrderStatus, status, "status").value)
    return query.order_by(ServiceOrder.opened_at.desc(), ServiceOrder.id.desc()).all()


def get_order_detail(order_id: int, establishment_id: int) -> dict:
    """Order with deduplicated items, requests, checklist and payments."""
    order = get_scoped_order(order_id, establishment_id)

    requests = db.session.query(OrderRequest).filter_by(order_id=order.id).order_by(
        OrderRequest.created_at.desc(), OrderRequest.id.desc()
    ).all()
    checklist = db.session.query(ChecklistItem).filter_by(order_id=order.id).order_by(ChecklistItem.id.asc()).all()
    payments = db.session.query(Payment).filter_by(order_id=order.id).order_by(Payment.id.asc()).all()

    return {
        "order": order.to_dict(),
        "items": list_items(order.id),
        "requests": [r.to_dict() for r in requests],
        "checklist": [c.to_dict() for c in checklist],
        "payments": [p.to_dict() for p in payments],
        "outstanding_part_requests": has_outstanding_part_requests(order.id),
    }
