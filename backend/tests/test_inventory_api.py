"""
Catalog and stock movement API tests.

Verifies:
- Unauthenticated writes return 401, viewers get 403
- A client-supplied role header grants nothing
- Movement results and failures map to the documented status codes
- Catalog edits never change stock
"""

import pytest

from stockroom.extensions import db
from stockroom.models import AuditLogEntry, Product, StockMovement

from conftest import auth_headers


def _stock(product_id: int) -> int:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock


# =============================================================================
# AUTHORIZATION
# =============================================================================


class TestAuthorization:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/transactions"),
            ("GET", "/transactions"),
            ("POST", "/products"),
            ("PUT", "/products/1"),
            ("DELETE", "/products/1"),
            ("GET", "/users"),
            ("PUT", "/users/1/role"),
            ("GET", "/logs"),
            ("GET", "/dashboard/summary"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client, product):
        resp = client.get("/transactions", headers=auth_headers("forged"))
        assert resp.status_code == 401

    def test_viewer_cannot_record_movement(self, client, viewer_headers, product):
        resp = client.post("/transactions", headers=viewer_headers, json={
            "product_id": product.id, "type": "in", "quantity": 1,
        })
        assert resp.status_code == 403
        assert resp.json["required_role"] == "admin"
        assert _stock(product.id) == 10

    def test_role_header_is_ignored(self, client, viewer_headers, product):
        headers = {**viewer_headers, "X-Role": "admin", "X-Username": "admin"}
        resp = client.post("/transactions", headers=headers, json={
            "product_id": product.id, "type": "in", "quantity": 1,
        })
        assert resp.status_code == 403


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================


class TestMovements:

    def test_record_inbound(self, client, admin_headers, product):
        resp = client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 5, "note": "delivery",
        })

        assert resp.status_code == 201
        assert resp.json["success"] is True
        assert resp.json["stock"] == 15
        assert resp.json["transaction"]["operator"] == "admin"
        assert _stock(product.id) == 15

    def test_insufficient_stock(self, client, admin_headers, product):
        resp = client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "out", "quantity": 12,
        })

        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock"
        assert _stock(product.id) == 10
        assert db.session.query(StockMovement).count() == 0

    def test_unknown_product(self, client, admin_headers, product):
        resp = client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id + 100, "type": "in", "quantity": 1,
        })
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "in", "quantity": 1},
            {"product_id": 1, "type": "return", "quantity": 1},
            {"product_id": 1, "type": "in", "quantity": 0},
            {"product_id": 1, "type": "in", "quantity": 2.5},
            {"product_id": 1, "type": "in", "quantity": "1e3"},
            {"product_id": 1, "type": "in", "quantity": 1, "operator": "someone-else"},
        ],
    )
    def test_invalid_payload(self, client, admin_headers, product, payload):
        resp = client.post("/transactions", headers=admin_headers, json=payload)
        assert resp.status_code == 400
        assert _stock(product.id) == 10

    def test_storage_failure_is_retryable_500(self, client, admin_headers, product, monkeypatch):
        from sqlalchemy.exc import OperationalError
        from stockroom.repositories.stock_repository import StockRepository

        def failing_insert(self, **kwargs):
            raise OperationalError("INSERT INTO transactions", {}, Exception("database is locked"))

        monkeypatch.setattr(StockRepository, "insert_movement", failing_insert)

        resp = client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "out", "quantity": 1,
        })
        assert resp.status_code == 500
        assert resp.json["retryable"] is True
        assert "locked" not in resp.get_data(as_text=True)
        assert _stock(product.id) == 10

    def test_list_movements_for_viewer(self, client, admin_headers, viewer_headers, product):
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 2,
        })
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "out", "quantity": 1,
        })

        resp = client.get("/transactions", headers=viewer_headers)
        assert resp.status_code == 200
        assert [m["type"] for m in resp.json] == ["out", "in"]
        assert resp.json[0]["product_name"] == "Widget"

        resp = client.get("/transactions?limit=1", headers=viewer_headers)
        assert len(resp.json) == 1

    def test_movement_is_audited(self, client, admin_headers, product):
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 2,
        })
        entry = db.session.query(AuditLogEntry).filter_by(action="add_transaction").one()
        assert entry.username == "admin"
        assert entry.to_dict()["details"]["productName"] == "Widget"


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_public_reads(self, client, product):
        resp = client.get("/products")
        assert resp.status_code == 200
        assert resp.json[0]["name"] == "Widget"

        resp = client.get(f"/products/{product.id}")
        assert resp.status_code == 200
        assert resp.json["stock"] == 10

        assert client.get(f"/products/{product.id + 100}").status_code == 404

    def test_create_product(self, client, admin_headers):
        resp = client.post("/products", headers=admin_headers, json={
            "name": "Gadget", "stock": 3, "price": "19.999", "category": "Tools",
        })
        assert resp.status_code == 201
        assert resp.json["stock"] == 3
        assert resp.json["price"] == 20.0

        actions = [e.action for e in db.session.query(AuditLogEntry)]
        assert "add_product" in actions

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"name": ""},
            {"name": "Gadget", "stock": -1},
            {"name": "Gadget", "price": -5},
            {"name": "Gadget", "sku": "X-1"},
        ],
    )
    def test_create_product_invalid(self, client, admin_headers, payload):
        resp = client.post("/products", headers=admin_headers, json=payload)
        assert resp.status_code == 400

    def test_viewer_cannot_create(self, client, viewer_headers):
        resp = client.post("/products", headers=viewer_headers, json={"name": "Gadget"})
        assert resp.status_code == 403

    def test_update_product(self, client, admin_headers, product):
        resp = client.put(f"/products/{product.id}", headers=admin_headers, json={"price": 12.5})
        assert resp.status_code == 200
        assert resp.json["price"] == 12.5
        assert resp.json["stock"] == 10

    def test_update_cannot_touch_stock(self, client, admin_headers, product):
        resp = client.put(f"/products/{product.id}", headers=admin_headers, json={"stock": 999})
        assert resp.status_code == 400
        assert _stock(product.id) == 10

    def test_update_missing_product(self, client, admin_headers, product):
        resp = client.put(f"/products/{product.id + 100}", headers=admin_headers, json={"name": "X"})
        assert resp.status_code == 404

    def test_delete_product_without_movements(self, client, admin_headers, product):
        resp = client.delete(f"/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/products/{product.id}").status_code == 404

    def test_delete_product_with_movements_conflicts(self, client, admin_headers, product):
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 1,
        })
        resp = client.delete(f"/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert _stock(product.id) == 11
