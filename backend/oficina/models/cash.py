from __future__ import annotations

from ..extensions import db
from oficina.money import format_cents
from oficina.time_utils import to_utc_z


class CashSession(db.Model):
    """
    One open-to-close cycle of the shop's till.

    LIFECYCLE:
    - OPEN: movements and payments accrue against it
    - CLOSED: closing count taken, difference calculated; immutable

    INVARIANTS:
    - At most one OPEN session per establishment (partial unique index)
    - balance = opening + entries - exits
    - revenue accrues settled payments only; manual entries never count as revenue
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_one_open",
            "establishment_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_sessions_establishment_opened", "establishment_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.Integer, db.ForeignKey("establishments.id"), nullable=False, index=True)
    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, CLOSED

    # All amounts in cents
    opening_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_cents = db.Column(db.Integer, nullable=True)
    entries_cents = db.Column(db.Integer, nullable=False, default=0)
    exits_cents = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    difference_cents = db.Column(db.Integer, nullable=True)  # closing - balance

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == "OPEN"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "establishment_id": self.establishment_id,
            "status": self.status,
            "opened_by": self.opened_by_user_id,
            "opened_by_name": self.opened_by.name if self.opened_by else None,
            "closed_by": self.closed_by_user_id,
            "closed_by_name": self.closed_by.name if self.closed_by else None,
            "opening_cents": self.opening_cents,
            "closing_cents": self.closing_cents,
            "entries_cents": self.entries_cents,
            "exits_cents": self.exits_cents,
            "revenue_cents": self.revenue_cents,
            "balance_cents": self.balance_cents,
            "difference_cents": self.difference_cents,
            "opening_value": format_cents(self.opening_cents),
            "closing_value": format_cents(self.closing_cents),
            "entries_total": format_cents(self.entries_cents),
            "exits_total": format_cents(self.exits_cents),
            "revenue_total": format_cents(self.revenue_cents),
            "balance_total": format_cents(self.balance_cents),
            "difference": format_cents(self.difference_cents),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Manual cash entry or exit against an open session.

    IMMUTABLE: corrections are new offsetting movements, never edits.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_session_occurred", "cash_session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    type = db.Column(db.String(8), nullable=False)  # entry, exit
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cash_session = db.relationship("CashSession", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_session_id": self.cash_session_id,
            "type": self.type,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "balance_before_cents": self.balance_before_cents,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Payment(db.Model):
    """
    Payment for a finalized service order.

    GENERATED when the order is finalized (at most one per order),
    PAID when settled; settlement accrues revenue on the open cash session.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_payments_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="GENERATED", index=True)
    method = db.Column(db.String(16), nullable=True)

    settled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "cash_session_id": self.cash_session_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "status": self.status,
            "method": self.method,
            "settled_by": self.settled_by_user_id,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }
