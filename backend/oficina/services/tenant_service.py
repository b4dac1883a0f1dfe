"""
Establishment scoping helpers

WHY: Every order, request and cash session belongs to one establishment.
An id that exists but belongs to another shop is answered exactly like a
missing id, so callers cannot discover other tenants.

USAGE:
    actor = get_actor(user_id)
    order = get_scoped_order(order_id, actor.establishment_id, lock=True)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Establishment, User, Client, Vehicle, CatalogItem, ServiceOrder
from oficina.validation import NotFound, Forbidden
from .concurrency import lock_for_update


def get_actor(user_id: int | None) -> User:
    """Resolve the acting staff member. Inactive users may not act."""
    if user_id is None:
        raise NotFound("User not found")
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFound("User not found")
    if not user.is_active:
        raise Forbidden("User is inactive")
    return user


def require_establishment(establishment_id: int) -> Establishment:
    establishment = db.session.query(Establishment).filter_by(id=establishment_id).first()
    if not establishment:
        raise NotFound("Establishment not found")
    if not establishment.is_active:
        raise Forbidden("Establishment is inactive")
    return establishment


def require_user_in_establishment(user_id: int | None, establishment_id: int, *, label: str = "User") -> User:
    """Staff member referenced by an operation (recipient, responsible, opener)."""
    user = db.session.query(User).filter_by(id=user_id, establishment_id=establishment_id).first()
    if not user:
        raise NotFound(f"{label} not found")
    return user


def require_responsible(user_id: int, establishment_id: int) -> User:
    """
    Validate a user may be assigned as responsible for an order.

    Only roles listed in RESPONSIBLE_ROLES qualify.
    """
    user = require_user_in_establishment(user_id, establishment_id, label="Responsible")
    if not user.is_active:
        raise Forbidden("Responsible user is inactive")
    allowed = current_app.config["RESPONSIBLE_ROLES"]
    if user.role not in allowed:
        raise Forbidden(
            f"Role '{user.role}' cannot be responsible for a service order",
            details={"allowed_roles": list(allowed)},
        )
    return user


def get_scoped_client(client_id: int, establishment_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id, establishment_id=establishment_id).first()
    if not client:
        raise NotFound("Client not found")
    return client


def get_scoped_vehicle(vehicle_id: int, establishment_id: int) -> Vehicle:
    vehicle = db.session.query(Vehicle).filter_by(id=vehicle_id, establishment_id=establishment_id).first()
    if not vehicle:
        raise NotFound("Vehicle not found")
    return vehicle


def get_scoped_catalog_item(catalog_item_id: int, establishment_id: int) -> CatalogItem:
    item = db.session.query(CatalogItem).filter_by(
        id=catalog_item_id,
        establishment_id=establishment_id,
        is_active=True,
    ).first()
    if not item:
        raise NotFound("Catalog item not found")
    return item


def get_scoped_order(order_id: int, establishment_id: int, *, lock: bool = False) -> ServiceOrder:
    query = db.session.query(ServiceOrder).filter_by(id=order_id, establishment_id=establishment_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFound("Service order not found")
    return order
