"""HTTP-level tests: auth, checkout, sales and invoice lookup."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.security import decode_access_token
from backend.app.models.inventory import Product
from backend.app.models.user import User


def _today_prefix() -> str:
    return f"INV{datetime.now(timezone.utc):%Y%m%d}"


def _sell(client: TestClient, headers: dict[str, str], product: Product, **extra) -> dict:
    body = {"items": [{"product_id": str(product.id), "quantity": 2, "discount_percentage": "10"}]}
    body.update(extra)
    resp = client.post("/api/v1/pos/sale", json=body, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ─── TestAuth ────────────────────────────────────────────────────────────────


class TestAuth:
    def test_login_and_me(self, client: TestClient, cashier: User) -> None:
        resp = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "test_cashier", "password": "pass"},
        )
        assert resp.status_code == 200
        token = resp.json()["access_token"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "test_cashier"
        assert me.json()["role"] == "EMPLOYEE"

    def test_username_is_case_insensitive(self, client: TestClient, cashier: User) -> None:
        resp = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "Test_Cashier", "password": "pass"},
        )
        assert resp.status_code == 200
        claims = decode_access_token(resp.json()["access_token"])
        assert claims["sub"] == str(cashier.id)
        assert claims["role"] == "EMPLOYEE"

    def test_wrong_password(self, client: TestClient, cashier: User) -> None:
        resp = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "test_cashier", "password": "nope"},
        )
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Incorrect username or password"}

    def test_missing_token(self, client: TestClient) -> None:
        resp = client.post("/api/v1/pos/sale", json={"items": []})
        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_logout_revokes_token(self, client: TestClient, cashier: User) -> None:
        token = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "test_cashier", "password": "pass"},
        ).json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


# ─── TestCheckout ────────────────────────────────────────────────────────────


class TestCheckout:
    def test_sale(self, client: TestClient, cashier_headers, product, make_batch) -> None:
        make_batch(product, 10)
        data = _sell(client, cashier_headers, product, cash_received="20.00")

        assert data["success"] is True
        assert data["invoice_number"] == f"{_today_prefix()}000001"
        assert data["final_total"] == "10.35"
        assert data["change"] == "9.65"

    def test_insufficient_stock_envelope(
        self, client: TestClient, cashier_headers, product, make_batch
    ) -> None:
        make_batch(product, 3)
        resp = client.post(
            "/api/v1/pos/sale",
            json={"items": [{"product_id": str(product.id), "quantity": 5}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["details"] == {
            "product_id": str(product.id),
            "requested": 5,
            "available": 3,
        }

    def test_validation_error_envelope(
        self, client: TestClient, cashier_headers, product, make_batch
    ) -> None:
        make_batch(product, 3)
        resp = client.post(
            "/api/v1/pos/sale",
            json={"items": [{"product_id": str(product.id), "quantity": 1, "discount_percentage": "150"}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_malformed_body_is_400(self, client: TestClient, cashier_headers) -> None:
        resp = client.post(
            "/api/v1/pos/sale",
            json={"items": [{"product_id": "not-a-uuid", "quantity": "x"}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["details"]["errors"]

    def test_request_id_is_echoed(self, client: TestClient, cashier_headers) -> None:
        resp = client.get(
            "/api/v1/sales", headers={**cashier_headers, "X-Request-ID": "abc123"}
        )
        assert resp.headers["X-Request-ID"] == "abc123"

    def test_scan(self, client: TestClient, cashier_headers, product, make_batch) -> None:
        make_batch(product, 4)
        resp = client.post(
            "/api/v1/pos/scan", json={"barcode": product.barcode}, headers=cashier_headers
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Milk 1L"
        assert resp.json()["stock"] == 4

    def test_scan_out_of_stock(self, client: TestClient, cashier_headers, product) -> None:
        resp = client.post(
            "/api/v1/pos/scan", json={"barcode": product.barcode}, headers=cashier_headers
        )
        assert resp.status_code == 404


# ─── TestSalesAndInvoices ────────────────────────────────────────────────────


class TestSalesAndInvoices:
    def test_sales_list_and_detail(
        self, client: TestClient, cashier_headers, product, make_batch
    ) -> None:
        make_batch(product, 10)
        sale = _sell(client, cashier_headers, product)

        listing = client.get("/api/v1/sales", headers=cashier_headers).json()
        assert len(listing) == 1
        assert listing[0]["item_count"] == 2
        assert listing[0]["cashier"] == "Test Cashier"

        detail = client.get(f"/api/v1/sales/{sale['sale_id']}", headers=cashier_headers)
        assert detail.status_code == 200
        body = detail.json()
        assert body["final_total"] == "10.35"
        assert body["items"][0]["product"] == "Milk 1L"
        assert body["items"][0]["discount_amount"] == "1.00"

    def test_unknown_sale(self, client: TestClient, cashier_headers) -> None:
        resp = client.get(f"/api/v1/sales/{uuid.uuid4()}", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_invoice_search_sort_and_scan(
        self, client: TestClient, cashier_headers, product, make_batch
    ) -> None:
        make_batch(product, 20)
        first = _sell(client, cashier_headers, product, customer_name="Huda")
        second = _sell(client, cashier_headers, product, customer_name="Omar")

        newest_first = client.get(
            "/api/v1/invoices", params={"sort_by": "number"}, headers=cashier_headers
        ).json()
        assert [i["invoice_number"] for i in newest_first] == [
            second["invoice_number"],
            first["invoice_number"],
        ]

        found = client.get(
            "/api/v1/invoices", params={"search": "huda"}, headers=cashier_headers
        ).json()
        assert [i["sale_id"] for i in found] == [first["sale_id"]]

        bad = client.get(
            "/api/v1/invoices", params={"sort_by": "colour"}, headers=cashier_headers
        )
        assert bad.status_code == 400

        scanned = client.post(
            "/api/v1/invoices/scan",
            json={"invoice_number": second["invoice_number"]},
            headers=cashier_headers,
        )
        assert scanned.json() == {
            "success": True,
            "invoice_number": second["invoice_number"],
            "sale_id": second["sale_id"],
        }

        receipt = client.get(f"/api/v1/invoices/{first['sale_id']}", headers=cashier_headers)
        assert receipt.status_code == 200
        assert receipt.json()["status"] == "Generated"
        assert receipt.json()["sale"]["customer_name"] == "Huda"

    def test_scan_unknown_invoice(self, client: TestClient, cashier_headers) -> None:
        resp = client.post(
            "/api/v1/invoices/scan",
            json={"invoice_number": "INV19990101000001"},
            headers=cashier_headers,
        )
        assert resp.status_code == 404


# ─── TestCatalog ─────────────────────────────────────────────────────────────


class TestCatalog:
    def test_category_and_product_crud(self, client: TestClient, cashier_headers) -> None:
        cat = client.post(
            "/api/v1/categories", json={"name": "Produce"}, headers=cashier_headers
        )
        assert cat.status_code == 201
        cat_id = cat.json()["id"]

        dup = client.post(
            "/api/v1/categories", json={"name": "Produce"}, headers=cashier_headers
        )
        assert dup.status_code == 400

        prod = client.post(
            "/api/v1/products",
            json={
                "name": "Apples 1kg",
                "barcode": "1111",
                "category_id": cat_id,
                "unit_price": "6.50",
            },
            headers=cashier_headers,
        )
        assert prod.status_code == 201
        prod_id = prod.json()["id"]
        assert prod.json()["stock"] == 0
        assert prod.json()["category_name"] == "Produce"

        patched = client.patch(
            f"/api/v1/products/{prod_id}",
            json={"discount_percentage": "5"},
            headers=cashier_headers,
        )
        assert patched.status_code == 200
        assert patched.json()["discount_percentage"] == "5.00"

        by_barcode = client.get("/api/v1/products/barcode/1111", headers=cashier_headers)
        assert by_barcode.json()["id"] == prod_id

        filtered = client.get(
            "/api/v1/products", params={"category_id": cat_id}, headers=cashier_headers
        ).json()
        assert [p["id"] for p in filtered] == [prod_id]

        # Still referenced by the product
        blocked = client.delete(f"/api/v1/categories/{cat_id}", headers=cashier_headers)
        assert blocked.status_code == 400

        assert client.delete(f"/api/v1/products/{prod_id}", headers=cashier_headers).status_code == 204
        assert client.delete(f"/api/v1/categories/{cat_id}", headers=cashier_headers).status_code == 204

    def test_product_on_a_sale_cannot_be_deleted(
        self, client: TestClient, cashier_headers, product, make_batch
    ) -> None:
        make_batch(product, 10)
        _sell(client, cashier_headers, product)
        resp = client.delete(f"/api/v1/products/{product.id}", headers=cashier_headers)
        assert resp.status_code == 400

    def test_brand_crud(self, client: TestClient, cashier_headers) -> None:
        brand = client.post(
            "/api/v1/brands", json={"name": "Nadec"}, headers=cashier_headers
        )
        assert brand.status_code == 201
        brand_id = brand.json()["id"]

        renamed = client.patch(
            f"/api/v1/brands/{brand_id}", json={"name": "NADEC"}, headers=cashier_headers
        )
        assert renamed.json()["name"] == "NADEC"
        assert client.delete(f"/api/v1/brands/{brand_id}", headers=cashier_headers).status_code == 204
        assert client.get("/api/v1/brands", headers=cashier_headers).json() == []

    def test_supplier_crud(self, client: TestClient, cashier_headers) -> None:
        created = client.post(
            "/api/v1/suppliers",
            json={"name": "Farm Fresh", "email": "orders@farmfresh.example"},
            headers=cashier_headers,
        )
        assert created.status_code == 201
        supplier_id = created.json()["id"]

        patched = client.patch(
            f"/api/v1/suppliers/{supplier_id}",
            json={"phone": "0551234567"},
            headers=cashier_headers,
        )
        assert patched.json()["phone"] == "0551234567"
        assert patched.json()["email"] == "orders@farmfresh.example"

        assert client.delete(f"/api/v1/suppliers/{supplier_id}", headers=cashier_headers).status_code == 204
        missing = client.get(f"/api/v1/suppliers/{supplier_id}", headers=cashier_headers)
        assert missing.status_code == 404
