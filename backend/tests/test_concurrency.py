# Overview: Pytest coverage for serialized updates on orders and cash sessions.

"""
Concurrency Tests

Covers:
- version_id refuses a write based on a stale read (orders, cash sessions)
- Commands re-run from a fresh read after a version mismatch
- Lock errors are retried, domain errors are not
- A mismatch on every attempt surfaces as Conflict with nothing saved
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from oficina.extensions import db
from oficina.models import CashMovement, CashSession, OrderItem, ServiceOrder
from oficina.services import cash_service, order_item_service
from oficina.services.concurrency import run_with_retry
from oficina.validation import Conflict, SessionClosed


def _bump_version(table, row_id):
    """Simulate another writer committing between our read and our write."""
    with db.session.no_autoflush:
        db.session.execute(
            text(f"UPDATE {table} SET version_id = version_id + 1 WHERE id = :id"),
            {"id": row_id},
        )


def _interleave(module, name, monkeypatch, *, table, times=1):
    """Wrap `module.name` so the first `times` calls bump the row's version."""
    original = getattr(module, name)
    calls = []

    def wrapper(*args, **kwargs):
        calls.append(1)
        if len(calls) <= times:
            _bump_version(table, wrapper.row_id)
        return original(*args, **kwargs)

    monkeypatch.setattr(module, name, wrapper)
    return wrapper, calls


@pytest.fixture
def open_session(shop, staff):
    return cash_service.open_session(shop.id, staff["attendant"].id, 10000)


class TestVersionColumn:

    def test_stale_cash_session_write_is_refused(self, open_session):
        session = db.session.get(CashSession, open_session.id)
        assert session.version_id == 1

        _bump_version("cash_sessions", session.id)
        session.notes = "counted twice"
        with pytest.raises(StaleDataError):
            db.session.flush()
        db.session.rollback()

    def test_stale_order_write_is_refused(self, order):
        stale = db.session.get(ServiceOrder, order.id)
        version = stale.version_id

        _bump_version("service_orders", stale.id)
        stale.observations = "overwritten"
        with pytest.raises(StaleDataError):
            db.session.flush()
        db.session.rollback()

        db.session.expire_all()
        fresh = db.session.get(ServiceOrder, order.id)
        assert fresh.version_id == version
        assert fresh.observations is None

    def test_every_command_bumps_the_version(self, open_session, staff):
        cash_service.record_movement(open_session.id, "entry", 500, "Change", staff["attendant"].id)
        db.session.expire_all()
        assert db.session.get(CashSession, open_session.id).version_id == 2


class TestRetriedCommands:

    def test_movement_rereads_after_stale_version(self, open_session, staff, monkeypatch):
        wrapper, calls = _interleave(cash_service, "compute_balance", monkeypatch, table="cash_sessions")
        wrapper.row_id = open_session.id

        session, movement = cash_service.record_movement(
            open_session.id, "entry", 5000, "Change fund", staff["attendant"].id
        )

        assert len(calls) == 2
        assert session.entries_cents == 5000
        assert session.balance_cents == 15000
        assert movement.balance_before_cents == 10000
        assert db.session.query(CashMovement).filter_by(cash_session_id=open_session.id).count() == 1

    def test_add_item_rereads_after_stale_version(self, order_in_progress, staff, oil, monkeypatch):
        order_item_service.add_item(order_in_progress.id, staff["attendant"].id, oil.id, 2)
        wrapper, calls = _interleave(order_item_service, "compute_order_total", monkeypatch, table="service_orders")
        wrapper.row_id = order_in_progress.id

        line = order_item_service.add_item(order_in_progress.id, staff["attendant"].id, oil.id, 1)

        assert len(calls) == 2
        assert line.quantity == 3
        assert db.session.query(OrderItem).filter_by(order_id=order_in_progress.id).count() == 1
        db.session.expire_all()
        assert db.session.get(ServiceOrder, order_in_progress.id).subtotal_cents == 3 * 4590

    def test_mismatch_on_every_attempt_is_conflict(self, open_session, staff, monkeypatch):
        wrapper, calls = _interleave(cash_service, "compute_balance", monkeypatch, table="cash_sessions", times=99)
        wrapper.row_id = open_session.id

        with pytest.raises(Conflict):
            cash_service.record_movement(open_session.id, "exit", 1000, "Courier", staff["attendant"].id)

        assert len(calls) == 3
        db.session.expire_all()
        session = db.session.get(CashSession, open_session.id)
        assert session.exits_cents == 0
        assert session.balance_cents == 10000
        assert db.session.query(CashMovement).count() == 0


class TestRunWithRetry:

    def test_lock_error_is_retried(self, app):
        attempts = []

        def _op():
            attempts.append(1)
            if len(attempts) == 1:
                raise OperationalError("UPDATE cash_sessions", {}, Exception("database is locked"))
            return "done"

        assert run_with_retry(_op) == "done"
        assert len(attempts) == 2

    def test_lock_error_reraised_when_attempts_run_out(self, app):
        attempts = []

        def _op():
            attempts.append(1)
            raise OperationalError("UPDATE cash_sessions", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(_op, attempts=2)
        assert len(attempts) == 2

    def test_domain_error_is_not_retried(self, app):
        attempts = []

        def _op():
            attempts.append(1)
            raise SessionClosed("Cash session is closed")

        with pytest.raises(SessionClosed):
            run_with_retry(_op)
        assert len(attempts) == 1
