"""
Domain events

WHY: Order, request and cash transitions ripple into other concerns
(notifications today). Each service publishes a named event describing what
happened; handlers are registered explicitly per app, so every side effect
is visible at the registration site.

DESIGN PRINCIPLES:
- Events are published inside the caller's DB transaction
- Handlers write through db.session and commit or roll back with the command
- A failing handler fails the command (no partial application)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app


ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_SERVICES_FINALIZED = "order.services_finalized"
ORDER_FINALIZED = "order.finalized"
ORDER_DELETED = "order.deleted"
REQUEST_CREATED = "request.created"
REQUEST_ACCEPTED = "request.accepted"
REQUEST_REJECTED = "request.rejected"
REQUEST_CANCELLED = "request.cancelled"
REQUEST_DELETED = "request.deleted"
CASH_SESSION_OPENED = "cash.session_opened"
CASH_SESSION_CLOSED = "cash.session_closed"
PAYMENT_RECORDED = "payment.recorded"

EVENT_NAMES = frozenset({
    ORDER_CREATED, ORDER_STATUS_CHANGED, ORDER_SERVICES_FINALIZED,
    ORDER_FINALIZED, ORDER_DELETED,
    REQUEST_CREATED, REQUEST_ACCEPTED, REQUEST_REJECTED,
    REQUEST_CANCELLED, REQUEST_DELETED,
    CASH_SESSION_OPENED, CASH_SESSION_CLOSED,
    PAYMENT_RECORDED,
})

EXTENSION_KEY = "oficina.events"


@dataclass(frozen=True)
class DomainEvent:
    name: str
    establishment_id: int
    entity_type: str
    entity_id: int | None
    actor_user_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[DomainEvent], None]


class EventDispatcher:
    """Explicit observer list keyed by event name."""

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, name: str, handler: Handler) -> None:
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {name}")
        self._handlers[name].append(handler)

    def handlers_for(self, name: str) -> list[Handler]:
        return list(self._handlers.get(name, ()))

    def dispatch(self, event: DomainEvent) -> None:
        for handler in self.handlers_for(event.name):
            handler(event)


def init_dispatcher(app) -> EventDispatcher:
    dispatcher = EventDispatcher()
    app.extensions[EXTENSION_KEY] = dispatcher
    return dispatcher


def get_dispatcher() -> EventDispatcher:
    return current_app.extensions[EXTENSION_KEY]


def publish(
    name: str,
    *,
    establishment_id: int,
    entity_type: str,
    entity_id: int | None,
    actor_user_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> DomainEvent:
    """Build an event and hand it to the app's dispatcher. Returns the event."""
    event = DomainEvent(
        name=name,
        establishment_id=establishment_id,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        payload=payload or {},
    )
    get_dispatcher().dispatch(event)
    return event
