from __future__ import annotations

from ..extensions import db
from oficina.money import format_cents


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.Integer, db.ForeignKey("establishments.id"), nullable=False, index=True)
    name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "establishment_id": self.establishment_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
        }


class Vehicle(db.Model):
    __tablename__ = "vehicles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.Integer, db.ForeignKey("establishments.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    plate = db.Column(db.String(16), nullable=False)
    make = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(64), nullable=True)

    client = db.relationship("Client", backref=db.backref("vehicles", lazy=True))

    @property
    def label(self) -> str:
        if self.make and self.model:
            return f"{self.make} {self.model} - {self.plate}"
        return self.plate

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "establishment_id": self.establishment_id,
            "client_id": self.client_id,
            "plate": self.plate,
            "make": self.make,
            "model": self.model,
            "label": self.label,
        }


class CatalogItem(db.Model):
    """
    A product or service that can be put on an order.

    Order lines snapshot the price at insertion time, so price changes here
    never rewrite existing lines until they are touched again.
    """
    __tablename__ = "catalog_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.Integer, db.ForeignKey("establishments.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, index=True)  # product, service
    name = db.Column(db.String(160), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "establishment_id": self.establishment_id,
            "kind": self.kind,
            "name": self.name,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "is_active": self.is_active,
        }
