# Overview: Pytest coverage for order checklist lines.

import pytest

from oficina.extensions import db
from oficina.models import ServiceOrder
from oficina.services import checklist_service, order_service
from oficina.validation import Conflict, NotFound, ValidationError


class TestChecklist:

    def test_add_defaults(self, order, staff):
        item = checklist_service.add_item(order.id, staff["mechanic"].id, "Check tire pressure")
        assert item.priority == "Medium"
        assert item.status == "Pending"

    def test_toggle(self, order, staff):
        item = checklist_service.add_item(order.id, staff["mechanic"].id, "Check oil", priority="High")
        item = checklist_service.toggle_item(order.id, item.id, staff["mechanic"].id)
        assert item.status == "Done"
        item = checklist_service.toggle_item(order.id, item.id, staff["mechanic"].id)
        assert item.status == "Pending"

    def test_update(self, order, staff):
        item = checklist_service.add_item(order.id, staff["mechanic"].id, "Check oil")
        item = checklist_service.update_item(
            order.id, item.id, staff["mechanic"].id,
            {"description": "Check oil level", "priority": "Urgent", "status": "Done"},
        )
        assert item.description == "Check oil level"
        assert item.priority == "Urgent"
        assert item.status == "Done"

    def test_invalid_priority(self, order, staff):
        with pytest.raises(ValidationError):
            checklist_service.add_item(order.id, staff["mechanic"].id, "Check oil", priority="Whenever")

    def test_no_effect_on_order_status(self, order_in_progress, staff):
        item = checklist_service.add_item(order_in_progress.id, staff["mechanic"].id, "Check oil")
        checklist_service.toggle_item(order_in_progress.id, item.id, staff["mechanic"].id)
        db.session.expire_all()
        assert db.session.get(ServiceOrder, order_in_progress.id).status == "In Progress"

    def test_delete(self, order, staff):
        item_id = checklist_service.add_item(order.id, staff["mechanic"].id, "Check oil").id
        checklist_service.delete_item(order.id, item_id, staff["mechanic"].id)
        assert checklist_service.list_items(order.id, order.establishment_id) == []
        with pytest.raises(NotFound):
            checklist_service.toggle_item(order.id, item_id, staff["mechanic"].id)

    @pytest.mark.parametrize("status", ["Finalized", "Cancelled", "Rejected"])
    def test_frozen_on_closed_order(self, order_in_progress, staff, status):
        item = checklist_service.add_item(order_in_progress.id, staff["mechanic"].id, "Check oil")
        if status == "Finalized":
            order_service.finalize_services(order_in_progress.id, staff["mechanic"].id)
            order_service.finalize_order(order_in_progress.id, staff["manager"].id)
        else:
            order_service.set_status(order_in_progress.id, staff["manager"].id, status)

        with pytest.raises(Conflict):
            checklist_service.add_item(order_in_progress.id, staff["mechanic"].id, "Late item")
        with pytest.raises(Conflict):
            checklist_service.toggle_item(order_in_progress.id, item.id, staff["mechanic"].id)
