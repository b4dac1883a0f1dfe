# Overview: Pytest coverage for the order item aggregator (merging, removal, totals).

import pytest

from oficina.extensions import db
from oficina.models import OrderItem, ServiceOrder
from oficina.services import order_item_service, order_service
from oficina.validation import Conflict, DuplicateServiceLine, NotFound, ValidationError


def _reload(order_id):
    db.session.expire_all()
    return db.session.get(ServiceOrder, order_id)


class TestAddItem:

    def test_product_additions_merge_into_one_line(self, order, staff, oil):
        order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 2)
        order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 3)

        lines = order_item_service.list_items(order.id)
        assert len(lines) == 1
        assert lines[0]["quantity"] == 5
        assert lines[0]["line_total_cents"] == 5 * 4590
        assert db.session.query(OrderItem).filter_by(order_id=order.id).count() == 1

        refreshed = _reload(order.id)
        assert refreshed.subtotal_cents == 22950
        assert refreshed.total_cents == 22950

    def test_repeat_addition_uses_current_catalog_price(self, order, staff, oil):
        order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 1)
        oil.price_cents = 5000
        db.session.commit()

        line = order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 1)
        assert line.quantity == 2
        assert line.unit_price_cents == 5000
        assert line.line_total_cents == 10000

    def test_service_is_a_singleton(self, order, staff, oil_change):
        order_item_service.add_item(order.id, staff["attendant"].id, oil_change.id)
        with pytest.raises(DuplicateServiceLine) as exc:
            order_item_service.add_item(order.id, staff["attendant"].id, oil_change.id)
        assert isinstance(exc.value, Conflict)
        assert exc.value.status_code == 409

    def test_service_quantity_must_be_one(self, order, staff, oil_change):
        with pytest.raises(ValidationError):
            order_item_service.add_item(order.id, staff["attendant"].id, oil_change.id, 2)

    @pytest.mark.parametrize("quantity", [0, -1, "1.5", True])
    def test_invalid_quantity(self, order, staff, oil, quantity):
        with pytest.raises(ValidationError):
            order_item_service.add_item(order.id, staff["attendant"].id, oil.id, quantity)

    def test_catalog_item_of_other_shop_is_not_found(self, order, staff, other_shop):
        from oficina.models import CatalogItem
        foreign = CatalogItem(establishment_id=other_shop.id, kind="product", name="Foreign", price_cents=100)
        db.session.add(foreign)
        db.session.commit()
        with pytest.raises(NotFound):
            order_item_service.add_item(order.id, staff["attendant"].id, foreign.id)

    def test_frozen_after_services_finalized(self, order_in_progress, staff, oil):
        order_service.finalize_services(order_in_progress.id, staff["mechanic"].id)
        with pytest.raises(Conflict):
            order_item_service.add_item(order_in_progress.id, staff["attendant"].id, oil.id)


class TestLegacyRows:
    """Storage may hold several rows for the same catalog item."""

    def _legacy_rows(self, order, item, quantities):
        for quantity in quantities:
            db.session.add(OrderItem(
                order_id=order.id,
                catalog_item_id=item.id,
                kind=item.kind,
                name=item.name,
                quantity=quantity,
                unit_price_cents=item.price_cents,
                line_total_cents=item.price_cents * quantity,
            ))
        db.session.commit()

    def test_read_model_is_deduplicated(self, order, oil, filter_part):
        self._legacy_rows(order, oil, [1, 2])
        self._legacy_rows(order, filter_part, [1])

        lines = {line["catalog_item_id"]: line for line in order_item_service.list_items(order.id)}
        assert len(lines) == 2
        assert lines[oil.id]["quantity"] == 3
        assert lines[oil.id]["line_total_cents"] == 3 * 4590
        assert lines[filter_part.id]["quantity"] == 1

    def test_subtotal_independent_of_row_layout(self, order, oil):
        self._legacy_rows(order, oil, [1, 2])
        assert order_item_service.compute_subtotal(order.id) == 3 * 4590
        # idempotent
        assert order_item_service.compute_subtotal(order.id) == 3 * 4590

    def test_mutation_folds_rows(self, order, staff, oil):
        self._legacy_rows(order, oil, [1, 2])
        line = order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 1)

        assert line.quantity == 4
        rows = db.session.query(OrderItem).filter_by(order_id=order.id).all()
        assert len(rows) == 1


class TestRemoveItem:

    def test_decrements_then_deletes(self, order, staff, oil):
        line = order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 2)
        line_id = line.id

        result = order_item_service.remove_item(order.id, staff["attendant"].id, line_id)
        assert result["deleted"] is False
        assert result["item"]["quantity"] == 1
        assert _reload(order.id).total_cents == 4590

        result = order_item_service.remove_item(order.id, staff["attendant"].id, line_id)
        assert result["deleted"] is True
        assert order_item_service.list_items(order.id) == []
        assert _reload(order.id).total_cents == 0

    def test_unknown_line(self, order, staff):
        with pytest.raises(NotFound):
            order_item_service.remove_item(order.id, staff["attendant"].id, 999999)

    def test_total_tracks_adjustments(self, order, staff, oil, oil_change):
        order_item_service.add_item(order.id, staff["attendant"].id, oil.id, 2)
        order_item_service.add_item(order.id, staff["attendant"].id, oil_change.id)
        order_service.update_adjustments(order.id, staff["manager"].id, discount="10,00", surcharge="2.50")

        refreshed = _reload(order.id)
        subtotal = order_item_service.compute_subtotal(order.id)
        assert subtotal == 2 * 4590 + 8000
        assert refreshed.total_cents == subtotal - 1000 + 250

        line = db.session.query(OrderItem).filter_by(order_id=order.id, catalog_item_id=oil.id).one()
        order_item_service.remove_item(order.id, staff["attendant"].id, line.id)
        refreshed = _reload(order.id)
        assert refreshed.total_cents == order_item_service.compute_subtotal(order.id) - 1000 + 250
