"""
HTTP layer tests: request shapes, error kinds and status codes.
"""

import pytest
from sqlalchemy.exc import OperationalError

from stationery.extensions import db
from stationery.models import Transaction


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# CATALOG AND LOCATIONS
# =============================================================================


class TestCatalogRoutes:

    def test_create_and_list_products(self, client):
        resp = client.post("/api/products", json={"name": "Pencil", "price_cents": 500, "central_stock": 20})
        assert resp.status_code == 201
        assert resp.get_json()["central_stock"] == 20

        listed = client.get("/api/products").get_json()
        assert listed["count"] == 1

    def test_invalid_set_configuration(self, client, pen):
        resp = client.post("/api/products", json={
            "name": "Bad Kit", "price_cents": 100, "is_set": True,
            "set_items": [{"component_product_id": 5555, "quantity": 1}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "InvalidSetConfiguration"

    def test_location_stock_view(self, client, stock, campus, pen):
        stock(campus, pen, 4)
        resp = client.get(f"/api/locations/{campus.id}/stock")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["stock"][0]["quantity"] == 4

    def test_delete_location_with_stock_conflicts(self, client, stock, campus, pen):
        stock(campus, pen, 4)
        resp = client.delete(f"/api/locations/{campus.id}")
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "InvalidState"

    def test_unknown_location_is_404(self, client):
        assert client.get("/api/locations/999").status_code == 404


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TestTransactionRoutes:

    def test_create_paid_purchase(self, client, ledger, stock, campus, student, pen):
        stock(campus, pen, 3)
        resp = client.post("/api/transactions", json={
            "student_id": student.id,
            "location_id": campus.id,
            "is_paid": True,
            "items": [{"product_id": pen.id, "quantity": 5, "unit_price_cents": 1000}],
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["stock_deducted"] is True
        assert body["items"][0]["status"] == "partial"
        assert body["items"][0]["quantity_deducted"] == 3
        assert ledger.get(campus.id, pen.id) == 0

    def test_missing_student_id(self, client, pen):
        resp = client.post("/api/transactions", json={"items": []})
        assert resp.status_code == 400

    def test_missing_price(self, client, campus, student, pen):
        resp = client.post("/api/transactions", json={
            "student_id": student.id,
            "location_id": campus.id,
            "items": [{"product_id": pen.id, "quantity": 1}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "ValidationError"

    def test_location_required(self, client, db_session, pen):
        from stationery.models import Student

        outsider = Student(student_code="X-1", name="Nowhere", course="PHD")
        db_session.add(outsider)
        db_session.commit()

        resp = client.post("/api/transactions", json={
            "student_id": outsider.id,
            "items": [{"product_id": pen.id, "quantity": 1, "unit_price_cents": 1000}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "LocationRequired"

    def test_edit_then_delete(self, client, ledger, stock, campus, student, pen):
        stock(campus, pen, 10)
        created = client.post("/api/transactions", json={
            "student_id": student.id,
            "location_id": campus.id,
            "is_paid": True,
            "items": [{"product_id": pen.id, "quantity": 2, "unit_price_cents": 1000}],
        }).get_json()

        resp = client.put(f"/api/transactions/{created['id']}", json={"is_paid": False})
        assert resp.status_code == 200
        assert resp.get_json()["stock_deducted"] is False
        assert ledger.get(campus.id, pen.id) == 10

        resp = client.delete(f"/api/transactions/{created['id']}")
        assert resp.status_code == 200
        assert client.get(f"/api/transactions/{created['id']}").status_code == 404


# =============================================================================
# TRANSFERS AND AUDITS
# =============================================================================


class TestTransferRoutes:

    def test_transfer_flow(self, client, ledger, campus, pen):
        created = client.post("/api/transfers", json={
            "to_location_id": campus.id,
            "items": {"product_id": pen.id, "quantity": 10},
        })
        assert created.status_code == 201
        transfer_id = created.get_json()["id"]

        completed = client.post(f"/api/transfers/{transfer_id}/complete")
        assert completed.status_code == 200
        assert completed.get_json()["linked_transaction_id"] is not None
        assert ledger.get(campus.id, pen.id) == 10

        illegal = client.put(f"/api/transfers/{transfer_id}", json={"status": "PENDING"})
        assert illegal.status_code == 409
        assert illegal.get_json()["kind"] == "InvalidStateTransition"

    def test_insufficient_stock_message(self, client, campus, pen):
        resp = client.post("/api/transfers", json={
            "to_location_id": campus.id,
            "items": [{"product_id": pen.id, "quantity": 1000}],
        })
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["kind"] == "InsufficientStock"
        assert body["error"] == "Insufficient stock for Blue Pen. Available: 100, Requested: 1000"


class TestAuditRoutes:

    @pytest.mark.parametrize("action", ["approve", "reject"])
    def test_second_decision_conflicts(self, client, campus, pen, action):
        created = client.post("/api/audit-logs", json={
            "product_id": pen.id,
            "location_id": campus.id,
            "before_quantity": 0,
            "after_quantity": 50,
        })
        assert created.status_code == 201
        audit_id = created.get_json()["id"]

        assert client.post(f"/api/audit-logs/{audit_id}/{action}", json={}).status_code == 200
        second = client.post(f"/api/audit-logs/{audit_id}/{action}", json={})
        assert second.status_code == 409
        assert second.get_json()["kind"] == "InvalidState"


# =============================================================================
# UNIT OF WORK AND ROUND TRIPS
# =============================================================================


def _paid_purchase(client, student, location, product, quantity, price):
    return client.post("/api/transactions", json={
        "student_id": student.id,
        "location_id": location.id,
        "is_paid": True,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price_cents": price}],
    })


class TestUnitOfWork:

    def test_failed_commit_is_reported_and_nothing_persists(
        self, client, db_session, ledger, stock, campus, student, pen, monkeypatch
    ):
        stock(campus, pen, 3)
        real_commit = db.session.commit
        attempts = []

        def locked_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            return real_commit()

        monkeypatch.setattr(db.session, "commit", locked_once)

        resp = _paid_purchase(client, student, campus, pen, 2, 1000)

        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "StockConflict"
        assert len(attempts) == 1
        assert db_session.query(Transaction).count() == 0
        assert ledger.get(campus.id, pen.id) == 3

    def test_location_with_transactions_cannot_be_deleted(self, client, ledger, stock, campus, student, pen):
        stock(campus, pen, 3)
        created = _paid_purchase(client, student, campus, pen, 3, 1000).get_json()
        assert ledger.get(campus.id, pen.id) == 0

        resp = client.delete(f"/api/locations/{campus.id}")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Cannot delete location. It is used in 1 transaction(s)."

        assert client.delete(f"/api/transactions/{created['id']}").status_code == 200
        assert ledger.get(campus.id, pen.id) == 3

    def test_shortage_survives_a_get_put_round_trip(
        self, client, ledger, stock, campus, student, pen, notebook, starter_kit
    ):
        stock(campus, pen, 4)
        created = _paid_purchase(client, student, campus, starter_kit, 1, 6500).get_json()

        body = client.get(f"/api/transactions/{created['id']}").get_json()
        components = {c["component_product_id"]: c for c in body["items"][0]["set_components"]}
        assert components[notebook.id]["taken"] is False
        assert components[notebook.id]["shortage"] is True

        # Send the stored items back unchanged while marking the purchase unpaid
        resp = client.put(f"/api/transactions/{created['id']}", json={"items": body["items"], "is_paid": False})
        assert resp.status_code == 200
        assert ledger.get(campus.id, pen.id) == 4

        stock(campus, notebook, 1)
        resp = client.put(f"/api/transactions/{created['id']}", json={"is_paid": True})
        assert resp.status_code == 200

        item = resp.get_json()["items"][0]
        assert item["status"] == "fulfilled"
        assert all(c["taken"] for c in item["set_components"])
        assert ledger.get(campus.id, notebook.id) == 0
        assert ledger.get(campus.id, pen.id) == 2
