# Overview: Pytest coverage for the HTTP boundary (status codes, payload shapes, actor resolution).

"""
API Tests

Verifies:
- Missing or unknown actor returns 401
- Domain errors map to 400/403/404/409 with {"error", "code"}
- Order, item, request, cash session and notification endpoints answer
  with the documented shapes
"""

import pytest


# =============================================================================
# ACTOR RESOLUTION
# =============================================================================


class TestActor:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/cash-sessions"),
            ("GET", "/api/notifications"),
            ("GET", "/api/reports/revenue/annual?year=2026"),
        ],
    )
    def test_requires_actor(self, client, shop, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["code"] == "unauthenticated"

    def test_unknown_user(self, client, shop):
        resp = client.get("/api/orders", headers={"X-User-Id": "999999"})
        assert resp.status_code == 401

    def test_user_id_query_param(self, client, staff):
        resp = client.get(f"/api/notifications?user_id={staff['manager'].id}")
        assert resp.status_code == 200
        assert resp.json == {"notifications": [], "unread": 0}

    def test_health(self, client, shop):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"


# =============================================================================
# ORDERS
# =============================================================================


class TestOrdersApi:

    def _create(self, client, headers, user, customer, vehicle, **extra):
        body = {"client_id": customer.id, "vehicle_id": vehicle.id, "description": "Engine noise"}
        body.update(extra)
        return client.post("/api/orders", json=body, headers=headers(user))

    def test_create_and_fetch(self, client, headers, staff, customer, vehicle):
        resp = self._create(client, headers, staff["attendant"], customer, vehicle)
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "Pending"
        assert order["total"] == "0.00"

        detail = client.get(f"/api/orders/{order['id']}", headers=headers(staff["mechanic"]))
        assert detail.status_code == 200
        assert detail.json["order"]["code"] == order["code"]
        assert detail.json["items"] == []

    def test_missing_fields(self, client, headers, staff):
        resp = client.post("/api/orders", json={"description": "x"}, headers=headers(staff["attendant"]))
        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    def test_non_mechanic_responsible_forbidden(self, client, headers, staff, customer, vehicle):
        resp = self._create(
            client, headers, staff["attendant"], customer, vehicle, responsible_id=staff["manager"].id
        )
        assert resp.status_code == 403
        assert resp.json["code"] == "forbidden"

    def test_invalid_status_value(self, client, headers, staff, order):
        resp = client.put(
            f"/api/orders/{order.id}/status", json={"status": "Flying"}, headers=headers(staff["manager"])
        )
        assert resp.status_code == 400

    def test_status_flow(self, client, headers, staff, order):
        manager = headers(staff["manager"])
        resp = client.post(f"/api/orders/{order.id}/accept", json={"responsible_id": staff["mechanic"].id}, headers=manager)
        assert resp.json["order"]["status"] == "In Progress"

        resp = client.post(f"/api/orders/{order.id}/finalize", headers=manager)
        assert resp.status_code == 409
        assert resp.json["code"] == "invalid_transition"

        resp = client.post(f"/api/orders/{order.id}/finalize-services", headers=manager)
        assert resp.json["order"]["status"] == "Services Finalized"

        resp = client.post(f"/api/orders/{order.id}/finalize", headers=manager)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "Finalized"
        assert resp.json["payment"]["status"] == "GENERATED"

    def test_other_shop_gets_404(self, client, headers, order, outsider):
        resp = client.get(f"/api/orders/{order.id}", headers=headers(outsider))
        assert resp.status_code == 404
        assert resp.json["code"] == "not_found"

    def test_delete_requires_confirmation(self, client, headers, staff, order):
        resp = client.delete(f"/api/orders/{order.id}", headers=headers(staff["manager"]))
        assert resp.status_code == 400

        resp = client.delete(f"/api/orders/{order.id}?confirm=true", headers=headers(staff["manager"]))
        assert resp.status_code == 200
        assert resp.json["deleted"] is True

        resp = client.get(f"/api/orders/{order.id}", headers=headers(staff["manager"]))
        assert resp.status_code == 404

    def test_adjustments(self, client, headers, staff, order, oil):
        client.post(f"/api/orders/{order.id}/items", json={"item_id": oil.id, "quantity": 2}, headers=headers(staff["attendant"]))
        resp = client.put(
            f"/api/orders/{order.id}/adjustments",
            json={"discount": "10,00", "surcharge": "0.80"},
            headers=headers(staff["manager"]),
        )
        assert resp.status_code == 200
        assert resp.json["order"]["total_cents"] == 9180 - 1000 + 80


# =============================================================================
# ITEMS
# =============================================================================


class TestItemsApi:

    def test_add_merge_and_remove(self, client, headers, staff, order, oil):
        h = headers(staff["attendant"])
        resp = client.post(f"/api/orders/{order.id}/items", json={"item_id": oil.id, "quantity": 2}, headers=h)
        assert resp.status_code == 201
        resp = client.post(f"/api/orders/{order.id}/items", json={"item_id": oil.id, "quantity": 3}, headers=h)
        assert resp.json["item"]["quantity"] == 5
        assert resp.json["order"]["total_cents"] == 5 * 4590

        listing = client.get(f"/api/orders/{order.id}/items", headers=h)
        assert len(listing.json["items"]) == 1
        assert listing.json["subtotal_cents"] == 5 * 4590

        line_id = listing.json["items"][0]["id"]
        resp = client.delete(f"/api/orders/{order.id}/items/{line_id}", headers=h)
        assert resp.status_code == 200
        assert resp.json["deleted"] is False
        assert resp.json["item"]["quantity"] == 4

    def test_duplicate_service_is_409(self, client, headers, staff, order, oil_change):
        h = headers(staff["attendant"])
        client.post(f"/api/orders/{order.id}/items", json={"item_id": oil_change.id}, headers=h)
        resp = client.post(f"/api/orders/{order.id}/items", json={"item_id": oil_change.id}, headers=h)
        assert resp.status_code == 409
        assert resp.json["code"] == "duplicate_service_line"

    def test_remove_last_unit_deletes_line(self, client, headers, staff, order, oil_change):
        h = headers(staff["attendant"])
        resp = client.post(f"/api/orders/{order.id}/items", json={"item_id": oil_change.id}, headers=h)
        line_id = resp.json["item"]["id"]
        resp = client.delete(f"/api/orders/{order.id}/items/{line_id}", headers=h)
        assert resp.json["deleted"] is True
        assert resp.json["order"]["total_cents"] == 0


# =============================================================================
# REQUESTS
# =============================================================================


class TestRequestsApi:

    def test_part_request_round_trip(self, client, headers, staff, order_in_progress):
        order_id = order_in_progress.id
        resp = client.post(
            f"/api/orders/{order_id}/requests",
            json={"subject": "Pads", "type": "part", "description": "Front pads", "recipient_id": staff["manager"].id},
            headers=headers(staff["mechanic"]),
        )
        assert resp.status_code == 201
        assert resp.json["order"]["status"] == "Awaiting Parts"
        request_id = resp.json["request"]["id"]

        manager = headers(staff["manager"])
        resp = client.put(f"/api/orders/{order_id}/requests/{request_id}", json={"status": "In Progress"}, headers=manager)
        assert resp.json["request"]["status"] == "In Progress"
        resp = client.put(f"/api/orders/{order_id}/requests/{request_id}", json={"status": "Finished"}, headers=manager)
        assert resp.json["request"]["status"] == "Finished"
        assert resp.json["order"]["status"] == "In Progress"

        resp = client.delete(f"/api/orders/{order_id}/requests/{request_id}", headers=manager)
        assert resp.status_code == 409

    def test_refused_status_change_saves_nothing(self, client, headers, staff, order_in_progress):
        order_id = order_in_progress.id
        resp = client.post(
            f"/api/orders/{order_id}/requests",
            json={"subject": "Old subject", "type": "information", "description": "Keys?"},
            headers=headers(staff["mechanic"]),
        )
        request_id = resp.json["request"]["id"]

        manager = headers(staff["manager"])
        resp = client.put(
            f"/api/orders/{order_id}/requests/{request_id}",
            json={"subject": "New subject", "status": "Finished"},
            headers=manager,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "invalid_transition"

        resp = client.get(f"/api/orders/{order_id}/requests/{request_id}", headers=manager)
        assert resp.json["request"]["subject"] == "Old subject"
        assert resp.json["request"]["status"] == "Pending"

    def test_reject_endpoint(self, client, headers, staff, order_in_progress):
        order_id = order_in_progress.id
        resp = client.post(
            f"/api/orders/{order_id}/requests",
            json={"subject": "Ok?", "type": "approval", "description": "Budget"},
            headers=headers(staff["mechanic"]),
        )
        request_id = resp.json["request"]["id"]
        resp = client.post(f"/api/orders/{order_id}/requests/{request_id}/reject", headers=headers(staff["manager"]))
        assert resp.status_code == 200
        assert resp.json["request"]["status"] == "Rejected"

        listing = client.get(f"/api/orders/{order_id}/requests?status=Rejected", headers=headers(staff["manager"]))
        assert [r["id"] for r in listing.json["requests"]] == [request_id]


# =============================================================================
# CASH SESSIONS
# =============================================================================


class TestCashSessionsApi:

    def test_scenario(self, client, headers, shop, staff):
        attendant = staff["attendant"]
        resp = client.post(
            "/api/cash-sessions",
            json={"establishment_id": shop.id, "opening_value": "100.00", "opened_by": attendant.id},
        )
        assert resp.status_code == 201
        session_id = resp.json["session"]["id"]

        resp = client.post(
            "/api/cash-sessions",
            json={"establishment_id": shop.id, "opening_value": "10", "opened_by": attendant.id},
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "session_already_open"

        resp = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "entry", "value": "50,00", "description": "Change fund"},
            headers=headers(attendant),
        )
        assert resp.status_code == 201
        assert resp.json["session"]["balance_total"] == "150.00"

        resp = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "exit", "value": 20, "description": "Courier"},
            headers=headers(attendant),
        )
        assert resp.json["session"]["balance_total"] == "130.00"

        resp = client.put(
            f"/api/cash-sessions/{session_id}/close",
            json={"closing_value": "130.00", "closed_by": staff["manager"].id},
        )
        assert resp.status_code == 200
        assert resp.json["session"]["status"] == "CLOSED"
        assert resp.json["session"]["balance_total"] == "130.00"
        assert resp.json["session"]["difference"] == "0.00"

        resp = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "entry", "value": "1", "description": "late"},
            headers=headers(attendant),
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "session_closed"

    def test_opening_with_denominations(self, client, headers, staff):
        resp = client.post(
            "/api/cash-sessions",
            json={"opening_value": "10.00", "denominations": {"50": 1, "0.25": 4}},
            headers=headers(staff["attendant"]),
        )
        assert resp.status_code == 201
        assert resp.json["session"]["opening_cents"] == 1000 + 5000 + 100

    def test_negative_typed_value_rejected_with_denominations(self, client, headers, staff):
        h = headers(staff["attendant"])
        resp = client.post(
            "/api/cash-sessions",
            json={"opening_value": "-10.00", "denominations": {"50": 1}},
            headers=h,
        )
        assert resp.status_code == 400
        assert client.get("/api/cash-sessions/open", headers=h).json["session"] is None

    @pytest.mark.parametrize("value", ["0", "-5", "abc"])
    def test_invalid_movement_value(self, client, headers, staff, value):
        h = headers(staff["attendant"])
        session_id = client.post("/api/cash-sessions", json={"opening_value": 0}, headers=h).json["session"]["id"]
        resp = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "entry", "value": value, "description": "x"},
            headers=h,
        )
        assert resp.status_code == 400

    def test_open_status_and_detail(self, client, headers, staff):
        h = headers(staff["attendant"])
        assert client.get("/api/cash-sessions/open", headers=h).json == {"open": False, "session": None}

        session_id = client.post("/api/cash-sessions", json={"opening_value": "5"}, headers=h).json["session"]["id"]
        client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "entry", "value": "1", "description": "x"},
            headers=h,
        )
        assert client.get("/api/cash-sessions/open", headers=h).json["session"]["id"] == session_id

        detail = client.get(f"/api/cash-sessions/{session_id}", headers=h)
        assert len(detail.json["movements"]) == 1

    def test_payment_requires_open_session(self, client, headers, staff, order_in_progress):
        manager = headers(staff["manager"])
        order_id = order_in_progress.id
        client.post(f"/api/orders/{order_id}/finalize-services", headers=manager)
        client.post(f"/api/orders/{order_id}/finalize", headers=manager)

        resp = client.post(f"/api/orders/{order_id}/payment", json={"method": "pix"}, headers=manager)
        assert resp.status_code == 409

        client.post("/api/cash-sessions", json={"opening_value": "0"}, headers=manager)
        resp = client.post(f"/api/orders/{order_id}/payment", json={"method": "pix"}, headers=manager)
        assert resp.status_code == 200
        assert resp.json["payment"]["status"] == "PAID"


# =============================================================================
# NOTIFICATIONS / REPORTS
# =============================================================================


class TestNotificationsApi:

    def test_feed_and_mark_read(self, client, headers, staff, order):
        h = headers(staff["manager"])
        feed = client.get("/api/notifications", headers=h).json
        assert feed["unread"] == 1
        note_id = feed["notifications"][0]["id"]
        assert feed["notifications"][0]["type"] == "order_created"

        resp = client.put(f"/api/notifications/{note_id}/read", headers=h)
        assert resp.json["notification"]["is_read"] is True
        assert client.get("/api/notifications/unread-count", headers=h).json == {"unread": 0}

    def test_read_all(self, client, headers, staff, order):
        h = headers(staff["admin"])
        assert client.put("/api/notifications/read-all", headers=h).json == {"updated": 1}


class TestReportsApi:

    def test_monthly_requires_params(self, client, headers, staff):
        resp = client.get("/api/reports/revenue/monthly?year=2026", headers=headers(staff["manager"]))
        assert resp.status_code == 400

    @pytest.mark.parametrize("path", [
        "/api/reports/revenue/annual?year=9999",
        "/api/reports/revenue/monthly?year=9999&month=12",
    ])
    def test_out_of_range_year_is_400(self, client, headers, staff, path):
        resp = client.get(path, headers=headers(staff["manager"]))
        assert resp.status_code == 400

    def test_summary(self, client, headers, staff):
        resp = client.get("/api/reports/cash-sessions/summary", headers=headers(staff["manager"]))
        assert resp.status_code == 200
        assert resp.json["sessions"] == 0
