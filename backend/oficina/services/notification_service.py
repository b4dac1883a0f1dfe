"""
Notification Emitter

WHY: Staff learn about new orders, request answers and till events through
notifications polled by the front end (unread counter + feed). The core only
writes rows; delivery (sound, badges, toasts) is the client's business.

DESIGN:
- One handler per domain event, registered explicitly in register_handlers()
- Handlers add rows to the caller's transaction (no commit here)
- recipient_id NULL is a broadcast to the whole establishment; the sender
  never sees their own broadcast
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import Notification, ServiceOrder, User
from ..models.enums import NotificationPriority
from oficina.money import format_brl
from oficina.time_utils import utcnow
from oficina.validation import NotFound
from . import events
from .events import DomainEvent, EventDispatcher
from .tenant_service import get_actor


# =============================================================================
# RECIPIENTS
# =============================================================================

def staff_recipient_ids(establishment_id: int) -> list[int]:
    """Active users holding one of the NOTIFY_ROLES."""
    roles = list(current_app.config["NOTIFY_ROLES"])
    rows = db.session.query(User.id).filter(
        User.establishment_id == establishment_id,
        User.is_active.is_(True),
        User.role.in_(roles),
    ).order_by(User.id.asc()).all()
    return [row.id for row in rows]


def _unique(ids: Iterable[int | None], *, exclude: Iterable[int | None] = ()) -> list[int]:
    skip = {e for e in exclude if e is not None}
    seen: list[int] = []
    for user_id in ids:
        if user_id is None or user_id in skip or user_id in seen:
            continue
        seen.append(user_id)
    return seen


def _notify(
    event: DomainEvent,
    recipients: Iterable[int | None],
    *,
    type: str,
    title: str,
    message: str,
    reference_type: str,
    reference_id: int | None,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    metadata: dict | None = None,
) -> list[Notification]:
    created = []
    now = utcnow()
    for recipient_id in recipients:
        notification = Notification(
            establishment_id=event.establishment_id,
            recipient_id=recipient_id,
            sender_id=event.actor_user_id,
            type=type,
            title=title,
            message=message,
            priority=priority.value,
            reference_type=reference_type,
            reference_id=reference_id,
            metadata_json=metadata or {},
            is_read=False,
            created_at=now,
        )
        db.session.add(notification)
        created.append(notification)
    return created


def _order_label(event: DomainEvent) -> str:
    return event.payload.get("code") or f"#{event.payload.get('order_id') or event.entity_id}"


# =============================================================================
# ORDER HANDLERS
# =============================================================================

def on_order_created(event: DomainEvent) -> None:
    order = db.session.get(ServiceOrder, event.entity_id)
    client = order.client.name if order and order.client else "client"
    vehicle = order.vehicle.label if order and order.vehicle else "vehicle"
    recipients = _unique(staff_recipient_ids(event.establishment_id) + [event.payload.get("opened_by")])
    _notify(
        event,
        recipients,
        type="order_created",
        title="New service order",
        message=f"Order {_order_label(event)} opened for {client} ({vehicle}).",
        reference_type="service_order",
        reference_id=event.entity_id,
        metadata={"code": event.payload.get("code"), "status": event.payload.get("status")},
    )


def on_order_status_changed(event: DomainEvent) -> None:
    payload = event.payload
    recipients = _unique(
        [payload.get("responsible_id"), payload.get("opened_by")],
        exclude=[event.actor_user_id],
    )
    _notify(
        event,
        recipients,
        type="order_status_changed",
        title="Order status changed",
        message=f"Order {_order_label(event)}: {payload.get('previous_status')} -> {payload.get('status')}.",
        reference_type="service_order",
        reference_id=event.entity_id,
        metadata={
            "code": payload.get("code"),
            "previous_status": payload.get("previous_status"),
            "status": payload.get("status"),
        },
    )


def on_order_services_finalized(event: DomainEvent) -> None:
    payload = event.payload
    recipients = _unique(
        staff_recipient_ids(event.establishment_id)
        + [payload.get("responsible_id"), payload.get("opened_by")]
    )
    _notify(
        event,
        recipients,
        type="order_services_finalized",
        title="Services finalized",
        message=f"All services on order {_order_label(event)} are done; the order is ready for closing.",
        reference_type="service_order",
        reference_id=event.entity_id,
        priority=NotificationPriority.HIGH,
        metadata={"code": payload.get("code"), "previous_status": payload.get("previous_status")},
    )


def on_order_finalized(event: DomainEvent) -> None:
    payload = event.payload
    total = payload.get("total_cents") or 0
    _notify(
        event,
        staff_recipient_ids(event.establishment_id),
        type="payment_ready",
        title="Order ready for payment",
        message=f"Order {_order_label(event)} was finalized. Amount due: {format_brl(total)}.",
        reference_type="service_order",
        reference_id=event.entity_id,
        priority=NotificationPriority.HIGH,
        metadata={
            "code": payload.get("code"),
            "total_cents": total,
            "payment_id": payload.get("payment_id"),
        },
    )


def on_order_deleted(event: DomainEvent) -> None:
    payload = event.payload
    recipients = _unique(
        staff_recipient_ids(event.establishment_id)
        + [payload.get("opened_by"), payload.get("responsible_id"), event.actor_user_id]
    )
    _notify(
        event,
        recipients,
        type="order_deleted",
        title="Service order deleted",
        message=f"Order {_order_label(event)} was deleted.",
        reference_type="service_order",
        reference_id=event.entity_id,
        priority=NotificationPriority.HIGH,
        metadata={"code": payload.get("code"), "status": payload.get("status")},
    )


# =============================================================================
# REQUEST HANDLERS
# =============================================================================

def _request_metadata(event: DomainEvent) -> dict:
    payload = event.payload
    return {
        "order_id": payload.get("order_id"),
        "code": payload.get("code"),
        "subject": payload.get("subject"),
        "type": payload.get("type"),
        "status": payload.get("status"),
        "previous_status": payload.get("previous_status"),
    }


def on_request_created(event: DomainEvent) -> None:
    payload = event.payload
    # no recipient: broadcast to the establishment
    recipients = [payload.get("recipient_id")]
    _notify(
        event,
        recipients,
        type="request_created",
        title=f"New request: {payload.get('subject')}",
        message=f"New {payload.get('type')} request on order {_order_label(event)}.",
        reference_type="request",
        reference_id=event.entity_id,
        priority=NotificationPriority.from_request_priority(payload.get("priority")),
        metadata=_request_metadata(event),
    )


def _on_request_answered(event: DomainEvent, *, type: str, verb: str) -> None:
    payload = event.payload
    recipients = _unique([payload.get("sender_id"), event.actor_user_id])
    _notify(
        event,
        recipients,
        type=type,
        title=f"Request {verb}: {payload.get('subject')}",
        message=f"Request on order {_order_label(event)} was {verb} (now {payload.get('status')}).",
        reference_type="request",
        reference_id=event.entity_id,
        priority=NotificationPriority.from_request_priority(payload.get("priority")),
        metadata=_request_metadata(event),
    )


def on_request_accepted(event: DomainEvent) -> None:
    _on_request_answered(event, type="request_accepted", verb="accepted")


def on_request_rejected(event: DomainEvent) -> None:
    _on_request_answered(event, type="request_rejected", verb="rejected")


def on_request_cancelled(event: DomainEvent) -> None:
    _on_request_answered(event, type="request_cancelled", verb="cancelled")


def on_request_deleted(event: DomainEvent) -> None:
    payload = event.payload
    recipients = _unique(
        [payload.get("sender_id"), payload.get("recipient_id")],
        exclude=[event.actor_user_id],
    )
    _notify(
        event,
        recipients,
        type="request_deleted",
        title=f"Request deleted: {payload.get('subject')}",
        message=f"A request on order {_order_label(event)} was deleted.",
        reference_type="request",
        reference_id=event.entity_id,
        metadata=_request_metadata(event),
    )


# =============================================================================
# CASH HANDLERS
# =============================================================================

def on_cash_session_opened(event: DomainEvent) -> None:
    opening = event.payload.get("opening_cents") or 0
    _notify(
        event,
        staff_recipient_ids(event.establishment_id),
        type="cash_session_opened",
        title="Cash session opened",
        message=f"The till was opened with {format_brl(opening)}.",
        reference_type="cash_session",
        reference_id=event.entity_id,
        metadata={"opening_cents": opening},
    )


def on_cash_session_closed(event: DomainEvent) -> None:
    payload = event.payload
    difference = payload.get("difference_cents") or 0
    _notify(
        event,
        staff_recipient_ids(event.establishment_id),
        type="cash_session_closed",
        title="Cash session closed",
        message=(
            f"The till was closed. Expected {format_brl(payload.get('balance_cents') or 0)}, "
            f"counted {format_brl(payload.get('closing_cents') or 0)}, "
            f"difference {format_brl(difference)}."
        ),
        reference_type="cash_session",
        reference_id=event.entity_id,
        priority=NotificationPriority.NORMAL if difference == 0 else NotificationPriority.HIGH,
        metadata={
            "balance_cents": payload.get("balance_cents"),
            "closing_cents": payload.get("closing_cents"),
            "difference_cents": difference,
            "revenue_cents": payload.get("revenue_cents"),
        },
    )


def on_payment_recorded(event: DomainEvent) -> None:
    payload = event.payload
    amount = payload.get("amount_cents") or 0
    _notify(
        event,
        [None],
        type="payment_recorded",
        title="Payment received",
        message=f"Order {_order_label(event)} paid: {format_brl(amount)} ({payload.get('method')}).",
        reference_type="service_order",
        reference_id=payload.get("order_id"),
        metadata={
            "payment_id": event.entity_id,
            "amount_cents": amount,
            "method": payload.get("method"),
            "cash_session_id": payload.get("cash_session_id"),
        },
    )


def register_handlers(dispatcher: EventDispatcher) -> None:
    dispatcher.subscribe(events.ORDER_CREATED, on_order_created)
    dispatcher.subscribe(events.ORDER_STATUS_CHANGED, on_order_status_changed)
    dispatcher.subscribe(events.ORDER_SERVICES_FINALIZED, on_order_services_finalized)
    dispatcher.subscribe(events.ORDER_FINALIZED, on_order_finalized)
    dispatcher.subscribe(events.ORDER_DELETED, on_order_deleted)
    dispatcher.subscribe(events.REQUEST_CREATED, on_request_created)
    dispatcher.subscribe(events.REQUEST_ACCEPTED, on_request_accepted)
    dispatcher.subscribe(events.REQUEST_REJECTED, on_request_rejected)
    dispatcher.subscribe(events.REQUEST_CANCELLED, on_request_cancelled)
    dispatcher.subscribe(events.REQUEST_DELETED, on_request_deleted)
    dispatcher.subscribe(events.CASH_SESSION_OPENED, on_cash_session_opened)
    dispatcher.subscribe(events.CASH_SESSION_CLOSED, on_cash_session_closed)
    dispatcher.subscribe(events.PAYMENT_RECORDED, on_payment_recorded)


# =============================================================================
# FEED (polled by clients)
# =============================================================================

def _visible_to(user: User):
    """Addressed to the user, or a broadcast the user did not send."""
    return and_(
        Notification.establishment_id == user.establishment_id,
        or_(
            Notification.recipient_id == user.id,
            and_(
                Notification.recipient_id.is_(None),
                or_(Notification.sender_id.is_(None), Notification.sender_id != user.id),
            ),
        ),
    )


def get_feed(user_id: int, *, limit: int | None = None, unread_only: bool = False) -> list[Notification]:
    """Unread first, then newest first."""
    user = get_actor(user_id)
    if limit is None:
        limit = current_app.config.get("NOTIFICATION_FEED_LIMIT", 50)
    query = db.session.query(Notification).filter(_visible_to(user))
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(
        Notification.is_read.asc(),
        Notification.created_at.desc(),
        Notification.id.desc(),
    ).limit(limit).all()


def unread_count(user_id: int) -> int:
    user = get_actor(user_id)
    return db.session.query(Notification).filter(
        _visible_to(user),
        Notification.is_read.is_(False),
    ).count()


def _get_visible(notification_id: int, user: User) -> Notification:
    notification = db.session.query(Notification).filter(
        Notification.id == notification_id,
        _visible_to(user),
    ).first()
    if not notification:
        raise NotFound("Notification not found")
    return notification


def mark_read(notification_id: int, user_id: int) -> Notification:
    user = get_actor(user_id)
    notification = _get_visible(notification_id, user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    """Returns the number of notifications flipped to read."""
    user = get_actor(user_id)
    unread = db.session.query(Notification).filter(
        _visible_to(user),
        Notification.is_read.is_(False),
    ).all()
    now = utcnow()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now
    db.session.commit()
    return len(unread)


def delete_notification(notification_id: int, user_id: int) -> None:
    user = get_actor(user_id)
    notification = _get_visible(notification_id, user)
    db.session.delete(notification)
    db.session.commit()
