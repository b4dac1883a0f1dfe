# Overview: Pytest coverage for the cash session ledger.

"""
Cash Session Ledger Tests

Covers:
- One open session per establishment (pre-check and unique index)
- Movement accumulation and balance invariant
- Close reconciliation and immutability afterwards
"""

import pytest
from sqlalchemy.exc import IntegrityError

from oficina.extensions import db
from oficina.models import CashSession
from oficina.services import cash_service
from oficina.validation import (
    Conflict, InvalidTransition, NotFound, SessionAlreadyOpen, SessionClosed, ValidationError,
)


@pytest.fixture
def open_session(shop, staff):
    return cash_service.open_session(shop.id, staff["attendant"].id, 10000)


class TestOpen:

    def test_open(self, open_session, staff):
        assert open_session.status == "OPEN"
        assert open_session.opening_cents == 10000
        assert open_session.balance_cents == 10000
        assert open_session.revenue_cents == 0
        assert open_session.opened_by_user_id == staff["attendant"].id

    def test_second_open_conflicts(self, open_session, shop, staff):
        with pytest.raises(SessionAlreadyOpen) as exc:
            cash_service.open_session(shop.id, staff["manager"].id, 0)
        assert isinstance(exc.value, Conflict)
        assert exc.value.details["session_id"] == open_session.id

    def test_reopen_after_close(self, open_session, shop, staff):
        cash_service.close_session(open_session.id, 10000, staff["attendant"].id)
        second = cash_service.open_session(shop.id, staff["attendant"].id, 5000)
        assert second.id != open_session.id
        assert second.status == "OPEN"

    def test_other_shop_may_open_concurrently(self, open_session, other_shop, outsider):
        other = cash_service.open_session(other_shop.id, outsider.id, 0)
        assert other.status == "OPEN"

    def test_negative_opening_rejected(self, shop, staff):
        with pytest.raises(ValidationError):
            cash_service.open_session(shop.id, staff["attendant"].id, -1)

    def test_opener_must_belong_to_establishment(self, other_shop, staff):
        with pytest.raises(NotFound):
            cash_service.open_session(other_shop.id, staff["attendant"].id, 0)

    def test_unique_index_blocks_second_open_row(self, open_session, shop, staff):
        db.session.add(CashSession(
            establishment_id=shop.id,
            opened_by_user_id=staff["manager"].id,
            status="OPEN",
            opening_cents=0,
            balance_cents=0,
        ))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


class TestMovements:

    def test_balance_after_each_movement(self, open_session, staff):
        steps = [("entry", 5000), ("exit", 2000), ("entry", 150), ("exit", 75)]
        entries = exits = 0
        for kind, amount in steps:
            session, movement = cash_service.record_movement(
                open_session.id, kind, amount, f"{kind} {amount}", staff["attendant"].id
            )
            balance_before = session.opening_cents + entries - exits
            if kind == "entry":
                entries += amount
            else:
                exits += amount
            assert movement.balance_before_cents == balance_before
            assert session.entries_cents == entries
            assert session.exits_cents == exits
            assert session.balance_cents == session.opening_cents + entries - exits

    def test_entries_are_not_revenue(self, open_session, staff):
        session, _ = cash_service.record_movement(open_session.id, "entry", 5000, "Change", staff["attendant"].id)
        assert session.revenue_cents == 0

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_value(self, open_session, staff, amount):
        with pytest.raises(ValidationError):
            cash_service.record_movement(open_session.id, "entry", amount, "x", staff["attendant"].id)

    def test_unknown_type(self, open_session, staff):
        with pytest.raises(ValidationError):
            cash_service.record_movement(open_session.id, "transfer", 100, "x", staff["attendant"].id)

    def test_blank_description(self, open_session, staff):
        with pytest.raises(ValidationError):
            cash_service.record_movement(open_session.id, "exit", 100, "  ", staff["attendant"].id)

    def test_other_shop_session_not_found(self, open_session, outsider):
        with pytest.raises(NotFound):
            cash_service.record_movement(open_session.id, "entry", 100, "x", outsider.id)


class TestClose:

    def test_scenario_reconciles(self, open_session, staff):
        cash_service.record_movement(open_session.id, "entry", 5000, "Sale of scrap", staff["attendant"].id)
        cash_service.record_movement(open_session.id, "exit", 2000, "Coffee", staff["attendant"].id)

        closed = cash_service.close_session(open_session.id, 13000, staff["manager"].id)
        assert closed.status == "CLOSED"
        assert closed.balance_cents == 13000
        assert closed.difference_cents == 0
        assert closed.closed_by_user_id == staff["manager"].id
        assert closed.closed_at is not None
        assert closed.to_dict()["difference"] == "0.00"
        assert closed.to_dict()["balance_total"] == "130.00"

    @pytest.mark.parametrize("counted,difference", [(12500, -500), (13100, 100)])
    def test_difference_sign(self, open_session, staff, counted, difference):
        cash_service.record_movement(open_session.id, "entry", 3000, "x", staff["attendant"].id)
        closed = cash_service.close_session(open_session.id, counted, staff["manager"].id)
        assert closed.difference_cents == difference

    def test_closed_session_is_immutable(self, open_session, staff):
        cash_service.close_session(open_session.id, 10000, staff["manager"].id)

        with pytest.raises(SessionClosed) as exc:
            cash_service.record_movement(open_session.id, "entry", 100, "late", staff["attendant"].id)
        assert isinstance(exc.value, InvalidTransition)

        with pytest.raises(SessionClosed):
            cash_service.close_session(open_session.id, 10000, staff["manager"].id)

    def test_negative_closing_rejected(self, open_session, staff):
        with pytest.raises(ValidationError):
            cash_service.close_session(open_session.id, -1, staff["manager"].id)


class TestQueries:

    def test_open_session_lookup(self, open_session, shop, staff):
        assert cash_service.get_open_session(shop.id).id == open_session.id
        cash_service.close_session(open_session.id, 10000, staff["manager"].id)
        assert cash_service.get_open_session(shop.id) is None

    def test_detail_lists_movements(self, open_session, shop, staff):
        cash_service.record_movement(open_session.id, "entry", 100, "a", staff["attendant"].id)
        cash_service.record_movement(open_session.id, "exit", 50, "b", staff["attendant"].id)
        detail = cash_service.get_session_detail(open_session.id, shop.id)
        assert [m["type"] for m in detail["movements"]] == ["entry", "exit"]
        assert detail["session"]["balance_cents"] == 10050

    def test_history_newest_first(self, open_session, shop, staff):
        cash_service.close_session(open_session.id, 10000, staff["manager"].id)
        second = cash_service.open_session(shop.id, staff["attendant"].id, 0)

        history = cash_service.list_sessions(shop.id)
        assert [s.id for s in history] == [second.id, open_session.id]
        assert [s.id for s in cash_service.list_sessions(shop.id, status="closed")] == [open_session.id]
