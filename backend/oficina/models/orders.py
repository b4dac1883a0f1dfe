from __future__ import annotations

from ..extensions import db
from oficina.money import format_cents
from oficina.time_utils import to_utc_z


class ServiceOrder(db.Model):
    """
    One repair job, tracked from intake to payment.

    STATUS: see OrderStatus. Created as Pending; moved by explicit user
    commands and by request side effects (Awaiting Parts <-> In Progress).

    TOTAL: total_cents = max(0, subtotal - discount + surcharge), recomputed
    after every item or adjustment change.
    """
    __tablename__ = "service_orders"
    __table_args__ = (
        db.Index("ix_service_orders_establishment_status", "establishment_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.Integer, db.ForeignKey("establishments.id"), nullable=False, index=True)

    # Display code (e.g., "OS-1718031234567-042")
    code = db.Column(db.String(40), nullable=False, unique=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    observations = db.Column(db.Text, nullable=True)

    responsible_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    status = db.Column(db.String(32), nullable=False, default="Pending", index=True)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    forecast_exit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Money (all amounts in cents)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    surcharge_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client")
    vehicle = db.relationship("Vehicle")
    responsible = db.relationship("User", foreign_keys=[responsible_id])
    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ServiceOrder id={self.id} code={self.code!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "establishment_id": self.establishment_id,
            "code": self.code,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "vehicle_id": self.vehicle_id,
            "vehicle_label": self.vehicle.label if self.vehicle else None,
            "description": self.description,
            "observations": self.observations,
            "responsible_id": self.responsible_id,
            "responsible_name": self.responsible.name if self.responsible else None,
            "status": self.status,
            "opened_by": self.opened_by_user_id,
            "closed_by": self.closed_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "forecast_exit_at": to_utc_z(self.forecast_exit_at),
            "discount_cents": self.discount_cents,
            "surcharge_cents": self.surcharge_cents,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "discount": format_cents(self.discount_cents),
            "surcharge": format_cents(self.surcharge_cents),
            "subtotal": format_cents(self.subtotal_cents),
            "total": format_cents(self.total_cents),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """
    Product or service line on an order.

    Storage may hold several rows for one catalog item (legacy inserts);
    the aggregator folds them into one row whenever the item is touched and
    the read model always presents one line per catalog item.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order_catalog", "order_id", "catalog_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False, index=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False)
    kind = db.Column(db.String(16), nullable=False)  # product, service
    name = db.Column(db.String(160), nullable=False)  # snapshot of catalog name

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "catalog_item_id": self.catalog_item_id,
            "kind": self.kind,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "line_total": format_cents(self.line_total_cents),
            "created_at": to_utc_z(self.created_at),
        }


class ChecklistItem(db.Model):
    """Simple to-do line on an order. No effect on order status."""
    __tablename__ = "checklist_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="Medium")
    status = db.Column(db.String(16), nullable=False, default="Pending")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
