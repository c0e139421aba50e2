"""
Integration tests for the JSON routes.

Uses the Flask test client against an app built with TestingConfig and
an in-memory store.
"""

import pytest

from app import create_app
from modules.balance import ShippingCostTable


# Fixtures

@pytest.fixture
def app():
    table = ShippingCostTable.from_records([
        {"empresa": "Andreani", "servicio": "Sucursal", "costo": 150},
    ])
    return create_app("config.TestingConfig", shipping_table=table)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def order(client):
    """Created order payload (two stamps, Andreani branch delivery)."""
    response = client.post("/api/orders", json={
        "customer": {"first_name": "Marta", "last_name": "Gil"},
        "shipping": {"carrier": "Andreani", "service": "Sucursal"},
        "stamps": [
            {"design_name": "Logo", "value": 2000, "deposit": 700},
            {"design_name": "Firma", "value": 1000, "deposit": 1000},
        ],
    })
    assert response.status_code == 201
    return response.get_json()


def transition(client, stamp_id, field, value):
    return client.post(f"/api/stamps/{stamp_id}/transitions", json={"field": field, "value": value})


# Tests for service endpoints

class TestServiceEndpoints:
    """Health and shipping lookups."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ok"
        assert data["checks"]["shipping_costs"] == "loaded"

    def test_shipping_quote(self, client):
        known = client.get("/api/shipping/quote?carrier=Andreani&service=Sucursal").get_json()
        pending = client.get("/api/shipping/quote?service=Sucursal").get_json()

        assert known == {"cost": 150, "pending": False, "known_route": True}
        assert pending["pending"] is True

    def test_shipping_costs(self, client):
        costs = client.get("/api/shipping/costs").get_json()["costs"]

        assert costs == [{"carrier": "ANDREANI", "service": "SUCURSAL", "cost": 150}]


# Tests for order endpoints

class TestOrderEndpoints:
    """Order CRUD and derived views."""

    def test_create_and_get(self, client, order):
        response = client.get(f"/api/orders/{order['id']}")

        assert response.status_code == 200
        data = response.get_json()
        assert data["customer"]["first_name"] == "Marta"
        assert data["summary"]["total_value"] == 3000
        assert data["balance"]["amount"] == 1450

    def test_create_without_stamps(self, client):
        response = client.post("/api/orders", json={"customer": {}})

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidFieldEditError"

    def test_unknown_order(self, client):
        response = client.get("/api/orders/ghost")

        assert response.status_code == 404
        assert response.get_json()["details"] == {"kind": "order", "id": "ghost"}

    def test_list_orders(self, client, order):
        data = client.get("/api/orders?sort=cliente").get_json()

        assert [o["id"] for o in data["orders"]] == [order["id"]]

    def test_list_orders_bad_sort(self, client):
        response = client.get("/api/orders?sort=colour")

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidSortCriteria"

    def test_edit_order(self, client, order):
        response = client.patch(f"/api/orders/{order['id']}", json={"taken_by": "<i>Sofi</i>"})

        assert response.status_code == 200
        assert response.get_json()["taken_by"] == "Sofi"

    def test_balance_and_summary(self, client, order):
        stamp_id = order["stamps"][1]["id"]

        balance = client.get(f"/api/orders/{order['id']}/balance").get_json()
        stamp_balance = client.get(f"/api/orders/{order['id']}/balance?stamp_id={stamp_id}").get_json()
        summary = client.get(f"/api/orders/{order['id']}/summary").get_json()

        assert balance["amount"] == 1450
        assert stamp_balance["amount"] == 0
        assert stamp_balance["shipping_pending"] is False
        assert summary["fabrication_summary"] == "SIN_HACER"

    def test_stamps_and_tasks(self, client, order):
        added = client.post(f"/api/orders/{order['id']}/stamps", json={"design_name": "Extra"})
        task = client.post(f"/api/orders/{order['id']}/tasks", json={"title": "Mandar foto"})
        task_id = task.get_json()["id"]
        done = client.patch(f"/api/orders/{order['id']}/tasks/{task_id}", json={"status": "COMPLETED"})

        assert added.status_code == 201
        assert task.status_code == 201
        assert done.get_json()["status"] == "COMPLETED"
        assert len(client.get(f"/api/orders/{order['id']}/stamps").get_json()["stamps"]) == 3
        assert len(client.get(f"/api/orders/{order['id']}/tasks").get_json()["tasks"]) == 1

    def test_delete_order(self, client, order):
        response = client.delete(f"/api/orders/{order['id']}")

        assert response.get_json() == {"deleted": order["id"], "stamps_removed": 2}
        assert client.get(f"/api/orders/{order['id']}").status_code == 404


# Tests for stamp endpoints

class TestStampEndpoints:
    """Direct edits and guarded transitions."""

    def test_rejected_transition_is_409(self, client, order):
        stamp_id = order["stamps"][0]["id"]

        response = transition(client, stamp_id, "sale_state", "TRANSFERIDO")

        assert response.status_code == 409
        data = response.get_json()
        assert data["accepted"] is False
        assert data["code"] == "fabrication_incomplete"

    def test_accepted_transition(self, client, order):
        stamp_id = order["stamps"][0]["id"]

        response = transition(client, stamp_id, "fabricacion", "Hecho")

        assert response.status_code == 200
        data = response.get_json()
        assert data["accepted"] is True
        assert data["stamp"]["fabrication_state"] == "HECHO"
        assert client.get(f"/api/stamps/{stamp_id}").get_json()["can_change_sale"] is True

    def test_shipping_fan_out(self, client, order):
        for stamp in order["stamps"]:
            transition(client, stamp["id"], "fabrication_state", "HECHO")
            transition(client, stamp["id"], "sale_state", "TRANSFERIDO")

        response = transition(client, order["stamps"][0]["id"], "shipping_state", "HACER_ETIQUETA")

        assert response.status_code == 200
        patches = response.get_json()["patches"]
        assert patches[0]["target"] == "order"
        assert patches[-1]["invalidate_aggregate"] is True
        view = client.get(f"/api/orders/{order['id']}").get_json()
        assert view["shipping_state"] == "HACER_ETIQUETA"
        assert {s["shipping_state"] for s in view["stamps"]} == {"HACER_ETIQUETA"}

    def test_missing_field(self, client, order):
        response = client.post(f"/api/stamps/{order['stamps'][0]['id']}/transitions", json={"value": 1})

        assert response.status_code == 400
        assert response.get_json()["error"] == "MissingField"

    def test_direct_edit(self, client, order):
        stamp_id = order["stamps"][0]["id"]

        response = client.patch(f"/api/stamps/{stamp_id}", json={"notes": "<b>Urgente</b>"})
        guarded = client.patch(f"/api/stamps/{stamp_id}", json={"is_priority": True})

        assert response.get_json()["notes"] == "Urgente"
        assert guarded.status_code == 400

    def test_non_object_body(self, client, order):
        response = client.patch(f"/api/stamps/{order['stamps'][0]['id']}", json=[1, 2])

        assert response.status_code == 400

    def test_delete_stamp(self, client, order):
        stamp_id = order["stamps"][0]["id"]

        response = client.delete(f"/api/stamps/{stamp_id}")

        assert response.get_json() == {"deleted": stamp_id, "order_id": order["id"]}
        assert client.get(f"/api/orders/{order['id']}").get_json()["cached_value"] == 1000


# Tests for production endpoints

class TestProductionEndpoints:
    """Queue and counts."""

    def test_queue(self, client, order):
        first, second = (s["id"] for s in order["stamps"])
        transition(client, first, "fabrication_state", "HECHO")

        data = client.get("/api/production/queue").get_json()

        assert data["count"] == 2
        assert [s["id"] for s in data["stamps"]] == [second, first]
        assert data["priority_order"][0] == "SIN_HACER"

    def test_queue_filter_and_bad_sort(self, client, order):
        filtered = client.get("/api/production/queue?fabrication=HECHO").get_json()
        bad = client.get("/api/production/queue?sort=medida:sideways")

        assert filtered["count"] == 0
        assert bad.status_code == 400

    def test_counts(self, client, order):
        counts = client.get(f"/api/production/counts?order_id={order['id']}").get_json()["counts"]

        assert counts["SIN_HACER"] == 2
