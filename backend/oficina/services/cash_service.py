"""
Cash Session Ledger

WHY: The till is counted at opening and closing; in between, manual
entries/exits and settled payments accrue against the open session. The
difference between the counted closing value and the computed balance is
the shop's cash discrepancy for that session.

DESIGN PRINCIPLES:
- At most one OPEN session per establishment (partial unique index)
- balance = opening + entries - exits, kept current after every movement
- revenue (settled payments) is tracked apart from manual entries
- Closed sessions are immutable
- Integer cents everywhere; no float arithmetic
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashSession, CashMovement
from ..models.enums import CashSessionStatus, MovementType
from oficina.money import MAX_AMOUNT_CENTS, compute_balance, compute_difference
from oficina.time_utils import utcnow
from oficina.validation import (
    NotFound,
    SessionAlreadyOpen,
    SessionClosed,
    ValidationError,
    parse_enum,
    parse_text,
)
from . import events
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_actor, require_establishment, require_user_in_establishment


def _check_amount(cents: int, field: str, *, allow_zero: bool) -> int:
    if isinstance(cents, bool) or not isinstance(cents, int):
        raise ValidationError(f"{field} must be an amount in cents")
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def _get_session(session_id: int, establishment_id: int, *, lock: bool = False) -> CashSession:
    query = db.session.query(CashSession).filter_by(id=session_id, establishment_id=establishment_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if not session:
        raise NotFound("Cash session not found")
    return session


def _publish(name: str, session: CashSession, actor_id: int | None, **payload) -> None:
    events.publish(
        name,
        establishment_id=session.establishment_id,
        entity_type="cash_session",
        entity_id=session.id,
        actor_user_id=actor_id,
        payload=payload,
    )


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(establishment_id: int, opened_by: int, opening_cents: int, notes: str | None = None) -> CashSession:
    """
    Open the establishment's till.

    Raises:
        SessionAlreadyOpen: another session is OPEN for the establishment
        ValidationError: negative opening value
    """
    opening_cents = _check_amount(opening_cents, "opening_value", allow_zero=True)
    notes = parse_text(notes, "notes", required=False)

    def _op():
        establishment = require_establishment(establishment_id)
        opener = get_actor(opened_by)
        require_user_in_establishment(opener.id, establishment.id)

        existing = db.session.query(CashSession.id).filter_by(
            establishment_id=establishment.id,
            status=CashSessionStatus.OPEN.value,
        ).first()
        if existing:
            raise SessionAlreadyOpen(
                "A cash session is already open for this establishment",
                details={"session_id": existing.id},
            )

        session = CashSession(
            establishment_id=establishment.id,
            opened_by_user_id=opener.id,
            status=CashSessionStatus.OPEN.value,
            opening_cents=opening_cents,
            entries_cents=0,
            exits_cents=0,
            revenue_cents=0,
            balance_cents=opening_cents,
            opened_at=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost the race against a concurrent open
            db.session.rollback()
            raise SessionAlreadyOpen("A cash session is already open for this establishment")

        _publish(events.CASH_SESSION_OPENED, session, opener.id, opening_cents=opening_cents)
        db.session.commit()

        current_app.logger.info(
            "Cash session %s opened for establishment %s by user %s (opening %s cents)",
            session.id, establishment.id, opener.id, opening_cents,
        )
        return session

    return run_with_retry(_op)


def record_movement(
    session_id: int,
    movement_type,
    amount_cents: int,
    description,
    user_id: int,
) -> tuple[CashSession, CashMovement]:
    """
    Record a manual entry or exit against an open session.

    Raises:
        SessionClosed: the session is not open
        ValidationError: amount <= 0, unknown type, blank description
    """
    kind = parse_enum(MovementType, movement_type, "type")
    amount_cents = _check_amount(amount_cents, "value", allow_zero=False)
    description = parse_text(description, "description", max_length=255)

    def _op():
        actor = get_actor(user_id)
        session = _get_session(session_id, actor.establishment_id, lock=True)
        if not session.is_open:
            raise SessionClosed("Cash session is closed; movements are not allowed")

        balance_before = session.balance_cents
        if kind == MovementType.ENTRY:
            session.entries_cents += amount_cents
        else:
            session.exits_cents += amount_cents
        session.balance_cents = compute_balance(
            session.opening_cents, session.entries_cents, session.exits_cents
        )

        movement = CashMovement(
            cash_session_id=session.id,
            type=kind.value,
            description=description,
            amount_cents=amount_cents,
            balance_before_cents=balance_before,
            user_id=actor.id,
            occurred_at=utcnow(),
        )
        db.session.add(movement)
        db.session.commit()
        return session, movement

    return run_with_retry(_op)


def close_session(session_id: int, closing_cents: int, closed_by: int, notes: str | None = None) -> CashSession:
    """
    Close the till: difference = counted closing value - computed balance.

    Raises:
        SessionClosed: session already closed
        ValidationError: negative closing value
    """
    closing_cents = _check_amount(closing_cents, "closing_value", allow_zero=True)
    notes = parse_text(notes, "notes", required=False)

    def _op():
        actor = get_actor(closed_by)
        session = _get_session(session_id, actor.establishment_id, lock=True)
        if not session.is_open:
            raise SessionClosed("Cash session is already closed")

        session.balance_cents = compute_balance(
            session.opening_cents, session.entries_cents, session.exits_cents
        )
        session.closing_cents = closing_cents
        session.difference_cents = compute_difference(closing_cents, session.balance_cents)
        session.status = CashSessionStatus.CLOSED.value
        session.closed_at = utcnow()
        session.closed_by_user_id = actor.id
        if notes:
            session.notes = f"{session.notes}\n{notes}" if session.notes else notes

        _publish(
            events.CASH_SESSION_CLOSED,
            session,
            actor.id,
            balance_cents=session.balance_cents,
            closing_cents=closing_cents,
            difference_cents=session.difference_cents,
            revenue_cents=session.revenue_cents,
        )
        db.session.commit()

        level = current_app.logger.warning if session.difference_cents else current_app.logger.info
        level(
            "Cash session %s closed by user %s: balance %s, counted %s, difference %s (cents)",
            session.id, actor.id, session.balance_cents, closing_cents, session.difference_cents,
        )
        return session

    return run_with_retry(_op)


def record_revenue(session: CashSession, amount_cents: int) -> CashSession:
    """
    Accrue a settled payment on a locked, open session. Does not commit.

    Revenue never touches entries/exits or the balance.
    """
    if not session.is_open:
        raise SessionClosed("Cash session is closed; revenue cannot be recorded")
    if amount_cents < 0:
        raise ValidationError("Revenue amount cannot be negative")
    session.revenue_cents = (session.revenue_cents or 0) + amount_cents
    return session


# =============================================================================
# QUERIES
# =============================================================================

def get_open_session(establishment_id: int, *, lock: bool = False) -> CashSession | None:
    query = db.session.query(CashSession).filter_by(
        establishment_id=establishment_id,
        status=CashSessionStatus.OPEN.value,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_session_detail(session_id: int, establishment_id: int) -> dict:
    session = _get_session(session_id, establishment_id)
    movements = db.session.query(CashMovement).filter_by(cash_session_id=session.id).order_by(
        CashMovement.occurred_at.asc(), CashMovement.id.asc()
    ).all()
    return {
        "session": session.to_dict(),
        "movements": [m.to_dict() for m in movements],
    }


def list_sessions(establishment_id: int, *, status=None, limit: int = 50) -> list[CashSession]:
    """Session history, newest first."""
    query = db.session.query(CashSession).filter_by(establishment_id=establishment_id)
    if status not in (None, ""):
        query = query.filter_by(status=parse_enum(CashSessionStatus, str(status).upper(), "status").value)
    return query.order_by(CashSession.opened_at.desc(), CashSession.id.desc()).limit(limit).all()
