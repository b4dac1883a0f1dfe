"""
Order Item Aggregator

WHY: An order presents one line per catalog item. Storage may still hold
several rows for the same catalog item (rows inserted at different times),
so every mutation first folds those rows into one, and the read model
groups by catalog item.

RULES:
- Products: repeat additions increase quantity; the line total is
  recomputed from the current catalog price
- Services: quantity is always 1 and a service cannot be added twice
- Removal decrements by one and deletes the line at zero
- Lines are frozen once the order reaches Services Finalized or a closed status
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import OrderItem, ServiceOrder
from ..models.enums import CatalogKind, ITEM_LOCKED_ORDER_STATUSES
from oficina.money import compute_order_total, format_cents
from oficina.validation import Conflict, DuplicateServiceLine, NotFound, ValidationError, parse_int
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_actor, get_scoped_catalog_item, get_scoped_order


def _ensure_items_editable(order: ServiceOrder) -> None:
    if order.status in ITEM_LOCKED_ORDER_STATUSES:
        raise Conflict(f"Items cannot be changed while the order is '{order.status}'")


def _rows_for(order_id: int, catalog_item_id: int) -> list[OrderItem]:
    return lock_for_update(
        db.session.query(OrderItem).filter_by(order_id=order_id, catalog_item_id=catalog_item_id)
    ).order_by(OrderItem.id.asc()).all()


def _fold_rows(rows: list[OrderItem]) -> tuple[OrderItem, int]:
    """Keep the oldest row, delete the rest. Returns (kept_row, total_quantity)."""
    keep = rows[0]
    total_quantity = sum(r.quantity or 0 for r in rows)
    for extra in rows[1:]:
        db.session.delete(extra)
    return keep, total_quantity


def compute_subtotal(order_id: int) -> int:
    """Sum of line totals for an order, in cents. Independent of row layout."""
    subtotal = db.session.query(
        func.coalesce(func.sum(OrderItem.line_total_cents), 0)
    ).filter(OrderItem.order_id == order_id).scalar()
    return int(subtotal or 0)


def refresh_order_total(order: ServiceOrder) -> int:
    """Recompute subtotal and total from the stored lines. Returns the total."""
    db.session.flush()
    order.subtotal_cents = compute_subtotal(order.id)
    order.total_cents = compute_order_total(
        order.subtotal_cents,
        order.discount_cents or 0,
        order.surcharge_cents or 0,
    )
    return order.total_cents


def list_items(order_id: int) -> list[dict]:
    """
    Deduplicated read model: one entry per catalog item.

    The entry id is the oldest row for that catalog item, which is the row
    mutations keep when folding.
    """
    rows = db.session.query(OrderItem).filter_by(order_id=order_id).order_by(OrderItem.id.asc()).all()

    lines: dict[int, dict] = {}
    for row in rows:
        line = lines.get(row.catalog_item_id)
        if line is None:
            line = row.to_dict()
            lines[row.catalog_item_id] = line
            continue
        line["quantity"] += row.quantity
        line["line_total_cents"] += row.line_total_cents
        # latest snapshot wins for display
        line["unit_price_cents"] = row.unit_price_cents
        line["name"] = row.name

    result = []
    for line in lines.values():
        if line["quantity"] <= 0:
            continue
        line["unit_price"] = format_cents(line["unit_price_cents"])
        line["line_total"] = format_cents(line["line_total_cents"])
        result.append(line)
    return result


def add_item(order_id: int, actor_id: int, catalog_item_id: int, quantity=1) -> OrderItem:
    """
    Add a catalog item to an order, merging with any existing line.

    Raises:
        Conflict: order lines are frozen, or the service is already present
        ValidationError: quantity < 1, or a service with quantity > 1
        NotFound: order or catalog item outside the actor's establishment
    """
    quantity = parse_int(quantity, "quantity", minimum=1)

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        _ensure_items_editable(order)

        catalog_item = get_scoped_catalog_item(catalog_item_id, order.establishment_id)
        rows = _rows_for(order.id, catalog_item.id)

        if catalog_item.kind == CatalogKind.SERVICE.value:
            if quantity != 1:
                raise ValidationError("Services can only be added with quantity 1")
            if rows:
                raise DuplicateServiceLine(
                    f"Service '{catalog_item.name}' is already on this order",
                    details={"catalog_item_id": catalog_item.id},
                )

        if rows:
            line, existing_quantity = _fold_rows(rows)
            new_quantity = existing_quantity + quantity
        else:
            line = OrderItem(
                order_id=order.id,
                catalog_item_id=catalog_item.id,
                kind=catalog_item.kind,
            )
            db.session.add(line)
            new_quantity = quantity

        line.name = catalog_item.name
        line.quantity = new_quantity
        line.unit_price_cents = catalog_item.price_cents
        line.line_total_cents = catalog_item.price_cents * new_quantity

        refresh_order_total(order)
        db.session.commit()

        current_app.logger.info(
            "Order %s: %s x%s -> quantity %s", order.code, catalog_item.name, quantity, new_quantity
        )
        return line

    return run_with_retry(_op)


def remove_item(order_id: int, actor_id: int, line_id: int) -> dict:
    """
    Take one unit off a line.

    Returns {"deleted": True} when the line disappeared, otherwise
    {"deleted": False, "item": <line>} with the reduced quantity.
    """
    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        _ensure_items_editable(order)

        line = db.session.query(OrderItem).filter_by(id=line_id, order_id=order.id).first()
        if not line:
            raise NotFound("Order item not found")

        rows = _rows_for(order.id, line.catalog_item_id)
        keep, total_quantity = _fold_rows(rows)
        remaining = total_quantity - 1

        if remaining <= 0:
            db.session.delete(keep)
            refresh_order_total(order)
            db.session.commit()
            return {"deleted": True, "item": None}

        keep.quantity = remaining
        keep.line_total_cents = keep.unit_price_cents * remaining
        refresh_order_total(order)
        db.session.commit()
        return {"deleted": False, "item": keep.to_dict()}

    return run_with_retry(_op)
