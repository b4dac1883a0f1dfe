"""
Request Sub-Workflow

WHY: Staff coordinate on an order through requests (parts, approvals,
payment questions, information). Part requests also drive the parent
order between In Progress and Awaiting Parts.

TRANSITIONS:
- accept: Pending -> In Progress -> Finished; Rejected -> In Progress
- reject: Pending -> Rejected; In Progress -> Cancelled
- delete: any status except Finished

ORDER SIDE EFFECTS:
- New part request: order -> Awaiting Parts (unless already waiting, frozen or closed)
- Part request leaves the outstanding set, or approval accepted:
  order Awaiting Parts -> In Progress when no part request is outstanding
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import OrderRequest, ServiceOrder, User
from ..models.enums import (
    OrderStatus,
    Priority,
    RequestStatus,
    RequestType,
    CLOSED_ORDER_STATUSES,
    OUTSTANDING_REQUEST_STATUSES,
    PART_REQUEST_KEEPS_STATUS,
)
from oficina.validation import Conflict, InvalidTransition, NotFound, parse_enum, parse_text
from oficina.time_utils import utcnow
from . import events
from .concurrency import run_with_retry
from .order_service import apply_status, reevaluate_awaiting_parts
from .tenant_service import get_actor, get_scoped_order, require_user_in_establishment


ACCEPT_TRANSITIONS = {
    RequestStatus.PENDING: RequestStatus.IN_PROGRESS,
    RequestStatus.IN_PROGRESS: RequestStatus.FINISHED,
    RequestStatus.REJECTED: RequestStatus.IN_PROGRESS,
}

REJECT_TRANSITIONS = {
    RequestStatus.PENDING: RequestStatus.REJECTED,
    RequestStatus.IN_PROGRESS: RequestStatus.CANCELLED,
}


def _load(order_id: int, request_id: int, actor_id: int) -> tuple[User, ServiceOrder, OrderRequest]:
    actor = get_actor(actor_id)
    order = get_scoped_order(order_id, actor.establishment_id, lock=True)
    req = db.session.query(OrderRequest).filter_by(id=request_id, order_id=order.id).first()
    if not req:
        raise NotFound("Request not found")
    return actor, order, req


def _ensure_order_open(order: ServiceOrder) -> None:
    if order.status in CLOSED_ORDER_STATUSES:
        raise Conflict(f"Order is '{order.status}'; requests are frozen")


def _publish(name: str, order: ServiceOrder, req: OrderRequest, actor_id: int, **extra) -> None:
    payload = {
        "order_id": order.id,
        "code": order.code,
        "subject": req.subject,
        "type": req.type,
        "priority": req.priority,
        "status": RequestStatus.coerce(req.status).value,
        "sender_id": req.sender_id,
        "recipient_id": req.recipient_id,
    }
    payload.update(extra)
    events.publish(
        name,
        establishment_id=order.establishment_id,
        entity_type="request",
        entity_id=req.id,
        actor_user_id=actor_id,
        payload=payload,
    )


# =============================================================================
# COMMANDS
# =============================================================================

def create_request(
    order_id: int,
    sender_id: int,
    *,
    subject,
    request_type,
    description,
    recipient_id: int | None = None,
    priority=None,
) -> OrderRequest:
    """
    Create a request on an order.

    A part request moves an order in active work to Awaiting Parts.
    """
    subject = parse_text(subject, "subject", max_length=200)
    description = parse_text(description, "description")
    kind = parse_enum(RequestType, request_type, "type")
    level = parse_enum(Priority, priority, "priority") if priority not in (None, "") else Priority.MEDIUM

    def _op():
        sender = get_actor(sender_id)
        order = get_scoped_order(order_id, sender.establishment_id, lock=True)
        _ensure_order_open(order)
        if recipient_id is not None:
            require_user_in_establishment(recipient_id, order.establishment_id, label="Recipient")

        now = utcnow()
        req = OrderRequest(
            order_id=order.id,
            sender_id=sender.id,
            recipient_id=recipient_id,
            subject=subject,
            type=kind.value,
            description=description,
            priority=level.value,
            status=RequestStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        db.session.add(req)
        db.session.flush()

        _publish(events.REQUEST_CREATED, order, req, sender.id)

        if kind == RequestType.PART and order.status not in PART_REQUEST_KEEPS_STATUS:
            apply_status(order, OrderStatus.AWAITING_PARTS, sender.id)

        db.session.commit()
        return req

    return run_with_retry(_op)


def _transition(order: ServiceOrder, req: OrderRequest, actor_id: int, target: RequestStatus, event_name: str) -> None:
    previous = RequestStatus.coerce(req.status)
    req.status = target.value
    req.responsible_id = actor_id
    req.updated_at = utcnow()
    _publish(event_name, order, req, actor_id, previous_status=previous.value)

    current_app.logger.info(
        "Request %s on order %s: '%s' -> '%s' by user %s",
        req.id, order.code, previous.value, target.value, actor_id,
    )

    if req.type == RequestType.PART.value and target.value not in OUTSTANDING_REQUEST_STATUSES:
        reevaluate_awaiting_parts(order, actor_id)
    elif req.type == RequestType.APPROVAL.value and event_name == events.REQUEST_ACCEPTED:
        reevaluate_awaiting_parts(order, actor_id)


def _resolve_move(current: RequestStatus, target: RequestStatus) -> str:
    """Event name for moving `current` to `target` via accept or reject."""
    if ACCEPT_TRANSITIONS.get(current) == target:
        return events.REQUEST_ACCEPTED
    if REJECT_TRANSITIONS.get(current) == target:
        return events.REQUEST_CANCELLED if target == RequestStatus.CANCELLED else events.REQUEST_REJECTED
    raise InvalidTransition(f"Request cannot move from '{current.value}' to '{target.value}'")


def update_request(order_id: int, request_id: int, actor_id: int, fields: dict, *, status=None) -> OrderRequest:
    """
    Edit subject/description/priority/recipient and optionally move the status.

    Edits and the status move are one command: when the move is refused
    nothing is saved. Finished requests cannot be edited.
    """
    target = parse_enum(RequestStatus, status, "status") if status not in (None, "") else None

    def _op():
        actor, order, req = _load(order_id, request_id, actor_id)
        _ensure_order_open(order)
        current = RequestStatus.coerce(req.status)
        if fields and current == RequestStatus.FINISHED:
            raise InvalidTransition("Finished requests cannot be edited")
        event_name = _resolve_move(current, target) if target is not None else None

        if "subject" in fields:
            req.subject = parse_text(fields["subject"], "subject", max_length=200)
        if "description" in fields:
            req.description = parse_text(fields["description"], "description")
        if "priority" in fields:
            req.priority = parse_enum(Priority, fields["priority"], "priority").value
        if "recipient_id" in fields:
            recipient_id = fields["recipient_id"]
            if recipient_id is not None:
                require_user_in_establishment(recipient_id, order.establishment_id, label="Recipient")
            req.recipient_id = recipient_id
        req.updated_at = utcnow()

        if event_name is not None:
            _transition(order, req, actor.id, target, event_name)

        db.session.commit()
        return req

    return run_with_retry(_op)


def accept_request(order_id: int, request_id: int, actor_id: int) -> OrderRequest:
    def _op():
        actor, order, req = _load(order_id, request_id, actor_id)
        _ensure_order_open(order)
        current = RequestStatus.coerce(req.status)
        target = ACCEPT_TRANSITIONS.get(current)
        if target is None:
            raise InvalidTransition(f"A '{current.value}' request cannot be accepted")
        _transition(order, req, actor.id, target, events.REQUEST_ACCEPTED)
        db.session.commit()
        return req

    return run_with_retry(_op)


def reject_request(order_id: int, request_id: int, actor_id: int) -> OrderRequest:
    """Pending requests are rejected; accepted ones are cancelled."""
    def _op():
        actor, order, req = _load(order_id, request_id, actor_id)
        _ensure_order_open(order)
        current = RequestStatus.coerce(req.status)
        target = REJECT_TRANSITIONS.get(current)
        if target is None:
            raise InvalidTransition(f"A '{current.value}' request cannot be rejected")
        event_name = events.REQUEST_CANCELLED if target == RequestStatus.CANCELLED else events.REQUEST_REJECTED
        _transition(order, req, actor.id, target, event_name)
        db.session.commit()
        return req

    return run_with_retry(_op)


def apply_request_status(order_id: int, request_id: int, actor_id: int, status) -> OrderRequest:
    """
    Status-driven update: map the requested target onto accept or reject.

    Raises InvalidTransition when neither reaches the target from the
    current status.
    """
    target = parse_enum(RequestStatus, status, "status")
    return update_request(order_id, request_id, actor_id, {}, status=target.value)


def delete_request(order_id: int, request_id: int, actor_id: int) -> dict:
    def _op():
        actor, order, req = _load(order_id, request_id, actor_id)
        _ensure_order_open(order)
        if RequestStatus.coerce(req.status) == RequestStatus.FINISHED:
            raise InvalidTransition("Finished requests cannot be deleted")

        _publish(events.REQUEST_DELETED, order, req, actor.id)
        was_part = req.type == RequestType.PART.value
        db.session.delete(req)
        if was_part:
            reevaluate_awaiting_parts(order, actor.id)

        db.session.commit()
        return {"deleted": True, "request_id": request_id}

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_requests(order_id: int, establishment_id: int, *, status=None) -> list[OrderRequest]:
    order = get_scoped_order(order_id, establishment_id)
    query = db.session.query(OrderRequest).filter_by(order_id=order.id)
    if status not in (None, ""):
        target = parse_enum(RequestStatus, status, "status")
        if target == RequestStatus.PENDING:
            query = query.filter(or_(OrderRequest.status == target.value, OrderRequest.status.is_(None)))
        else:
            query = query.filter(OrderRequest.status == target.value)
    return query.order_by(OrderRequest.created_at.desc(), OrderRequest.id.desc()).all()


def get_request(order_id: int, request_id: int, establishment_id: int) -> OrderRequest:
    order = get_scoped_order(order_id, establishment_id)
    req = db.session.query(OrderRequest).filter_by(id=request_id, order_id=order.id).first()
    if not req:
        raise NotFound("Request not found")
    return req
