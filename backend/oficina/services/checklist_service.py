"""Checklist lines on a service order. No effect on order status."""

from __future__ import annotations

from ..extensions import db
from ..models import ChecklistItem, ServiceOrder
from ..models.enums import ChecklistStatus, Priority, CLOSED_ORDER_STATUSES
from oficina.time_utils import utcnow
from oficina.validation import Conflict, NotFound, parse_enum, parse_text
from .concurrency import run_with_retry
from .tenant_service import get_actor, get_scoped_order


def _ensure_editable(order: ServiceOrder) -> None:
    if order.status in CLOSED_ORDER_STATUSES:
        raise Conflict(f"Order is '{order.status}'; the checklist is frozen")


def _load(order_id: int, item_id: int, actor_id: int) -> tuple[ServiceOrder, ChecklistItem]:
    actor = get_actor(actor_id)
    order = get_scoped_order(order_id, actor.establishment_id)
    item = db.session.query(ChecklistItem).filter_by(id=item_id, order_id=order.id).first()
    if not item:
        raise NotFound("Checklist item not found")
    return order, item


def list_items(order_id: int, establishment_id: int) -> list[ChecklistItem]:
    order = get_scoped_order(order_id, establishment_id)
    return db.session.query(ChecklistItem).filter_by(order_id=order.id).order_by(ChecklistItem.id.asc()).all()


def add_item(order_id: int, actor_id: int, description, priority=None) -> ChecklistItem:
    description = parse_text(description, "description")
    level = parse_enum(Priority, priority, "priority") if priority not in (None, "") else Priority.MEDIUM

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id)
        _ensure_editable(order)
        now = utcnow()
        item = ChecklistItem(
            order_id=order.id,
            description=description,
            priority=level.value,
            status=ChecklistStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        db.session.add(item)
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(order_id: int, item_id: int, actor_id: int, fields: dict) -> ChecklistItem:
    def _op():
        order, item = _load(order_id, item_id, actor_id)
        _ensure_editable(order)
        if "description" in fields:
            item.description = parse_text(fields["description"], "description")
        if "priority" in fields:
            item.priority = parse_enum(Priority, fields["priority"], "priority").value
        if "status" in fields:
            item.status = parse_enum(ChecklistStatus, fields["status"], "status").value
        item.updated_at = utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op)


def toggle_item(order_id: int, item_id: int, actor_id: int) -> ChecklistItem:
    """Pending <-> Done."""
    def _op():
        order, item = _load(order_id, item_id, actor_id)
        _ensure_editable(order)
        if item.status == ChecklistStatus.DONE.value:
            item.status = ChecklistStatus.PENDING.value
        else:
            item.status = ChecklistStatus.DONE.value
        item.updated_at = utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(order_id: int, item_id: int, actor_id: int) -> dict:
    def _op():
        order, item = _load(order_id, item_id, actor_id)
        _ensure_editable(order)
        db.session.delete(item)
        db.session.commit()
        return {"deleted": True, "checklist_item_id": item_id}

    return run_with_retry(_op)
