"""
Cash reports (read-only)

Revenue for a period = revenue of sessions closed in the period plus
revenue of still-open sessions opened in it. Manual entries are never
counted as revenue.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import CashSession
from ..models.enums import CashSessionStatus
from oficina.money import format_cents
from oficina.time_utils import month_bounds, to_utc_z, year_bounds
from oficina.validation import ValidationError


def _period_filter(start: datetime, end: datetime):
    return or_(
        and_(
            CashSession.status == CashSessionStatus.CLOSED.value,
            CashSession.closed_at >= start,
            CashSession.closed_at < end,
        ),
        and_(
            CashSession.status == CashSessionStatus.OPEN.value,
            CashSession.opened_at >= start,
            CashSession.opened_at < end,
        ),
    )


def _revenue(establishment_id: int, start: datetime, end: datetime) -> tuple[int, int]:
    total, count = db.session.query(
        func.coalesce(func.sum(CashSession.revenue_cents), 0),
        func.count(CashSession.id),
    ).filter(
        CashSession.establishment_id == establishment_id,
        _period_filter(start, end),
    ).one()
    return int(total or 0), int(count or 0)


def monthly_revenue(establishment_id: int, year: int, month: int) -> dict:
    try:
        start, end = month_bounds(year, month)
    except ValueError as exc:
        raise ValidationError(str(exc))
    total, sessions = _revenue(establishment_id, start, end)
    return {
        "establishment_id": establishment_id,
        "year": year,
        "month": month,
        "sessions": sessions,
        "revenue_cents": total,
        "revenue": format_cents(total),
    }


def annual_revenue(establishment_id: int, year: int) -> dict:
    """Year total with a month-by-month breakdown."""
    try:
        start, end = year_bounds(year)
    except ValueError as exc:
        raise ValidationError(str(exc))
    total, sessions = _revenue(establishment_id, start, end)
    months = [monthly_revenue(establishment_id, year, month) for month in range(1, 13)]
    return {
        "establishment_id": establishment_id,
        "year": year,
        "sessions": sessions,
        "revenue_cents": total,
        "revenue": format_cents(total),
        "months": [
            {"month": m["month"], "revenue_cents": m["revenue_cents"], "revenue": m["revenue"]}
            for m in months
        ],
    }


def session_summary(establishment_id: int, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Totals over closed sessions (by close date) in [start, end)."""
    query = db.session.query(
        func.count(CashSession.id),
        func.coalesce(func.sum(CashSession.entries_cents), 0),
        func.coalesce(func.sum(CashSession.exits_cents), 0),
        func.coalesce(func.sum(CashSession.revenue_cents), 0),
        func.coalesce(func.sum(CashSession.difference_cents), 0),
    ).filter(
        CashSession.establishment_id == establishment_id,
        CashSession.status == CashSessionStatus.CLOSED.value,
    )
    if start is not None:
        query = query.filter(CashSession.closed_at >= start)
    if end is not None:
        query = query.filter(CashSession.closed_at < end)

    count, entries, exits, revenue, difference = query.one()
    return {
        "establishment_id": establishment_id,
        "from": to_utc_z(start),
        "to": to_utc_z(end),
        "sessions": int(count or 0),
        "entries_cents": int(entries or 0),
        "exits_cents": int(exits or 0),
        "revenue_cents": int(revenue or 0),
        "difference_cents": int(difference or 0),
        "entries_total": format_cents(int(entries or 0)),
        "exits_total": format_cents(int(exits or 0)),
        "revenue_total": format_cents(int(revenue or 0)),
        "difference_total": format_cents(int(difference or 0)),
    }
