from __future__ import annotations

from ..extensions import db
from oficina.time_utils import to_utc_z


class OrderRequest(db.Model):
    """
    Inter-staff request attached to a service order (parts, approval,
    payment, information).

    LIFECYCLE:
    - Pending -> In Progress -> Finished (accept, accept)
    - Pending -> Rejected -> In Progress (reject, accept again)
    - In Progress -> Cancelled (reject after acceptance)

    Deletable while not Finished.
    """
    __tablename__ = "order_requests"
    __table_args__ = (
        db.Index("ix_order_requests_order_type_status", "order_id", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    subject = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="Medium")

    # Legacy rows may hold NULL; read through RequestStatus.coerce
    status = db.Column(db.String(16), nullable=True, default="Pending", index=True)

    # Last actor who accepted/rejected (audit)
    responsible_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sender = db.relationship("User", foreign_keys=[sender_id])
    recipient = db.relationship("User", foreign_keys=[recipient_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender.name if self.sender else None,
            "recipient_id": self.recipient_id,
            "recipient_name": self.recipient.name if self.recipient else None,
            "subject": self.subject,
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "status": self.status or "Pending",
            "responsible_id": self.responsible_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
