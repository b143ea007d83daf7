"""
HTTP surface: status codes, error bodies, warnings and CLI commands.
"""

from backoffice.models import Sale
from backoffice.services import income_service


def _bill_body(seller, *lines, **fields):
    body = {
        "seller_id": seller.id,
        "customer": {"id": 1, "name": "Ayesha"},
        "items": [{"product_id": p.id, "quantity": q} for p, q in lines],
    }
    body.update(fields)
    return body


class TestSystem:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_is_json_404(self, client):
        response = client.get("/api/nothing-here")
        assert response.status_code == 404
        assert "error" in response.get_json()


class TestProductRoutes:
    def test_create_and_duplicate(self, client):
        body = {"name": "Chrono", "model": "CH-1", "category": "Watches", "stock": 4}

        created = client.post("/api/products", json=body)
        duplicate = client.post("/api/products", json=body)

        assert created.status_code == 201
        assert created.get_json()["stock"] == 4
        assert duplicate.status_code == 409

    def test_missing_fields(self, client):
        response = client.post("/api/products", json={"name": "Nameless"})
        assert response.status_code == 400
        assert "Missing required fields" in response.get_json()["error"]

    def test_add_stock_and_history(self, client, make_product):
        product = make_product(stock=1)

        response = client.post(f"/api/products/{product.id}/stock", json={"quantity": 4, "notes": "PO 7"})
        history = client.get(f"/api/products/{product.id}/stock-history")

        assert response.status_code == 200
        assert response.get_json()["new_stock"] == 5
        assert history.get_json()[0]["note"] == "PO 7"

    def test_stock_put_rejected(self, client, make_product):
        product = make_product()
        response = client.put(f"/api/products/{product.id}", json={"stock": 50})
        assert response.status_code == 400

    def test_get_missing(self, client):
        assert client.get("/api/products/999").status_code == 404


class TestBillRoutes:
    def test_create_bill(self, client, make_product, make_seller, stock_of):
        product = make_product(stock=10)
        seller = make_seller(rate_cents=100)

        response = client.post("/api/bills", json=_bill_body(seller, (product, 3)))

        assert response.status_code == 201
        data = response.get_json()
        assert data["bill_number"] == "EM-0001"
        assert "warnings" not in data
        assert stock_of(product.id) == 7

    def test_insufficient_stock_reports_details(self, client, make_product, make_seller):
        product = make_product(stock=1)
        seller = make_seller()

        response = client.post("/api/bills", json=_bill_body(seller, (product, 2)))

        assert response.status_code == 400
        data = response.get_json()
        assert data["details"]["items"][0]["available"] == 1
        assert data["details"]["items"][0]["requested"] == 2

    def test_missing_seller_is_400_unknown_seller_is_404(self, client, make_product):
        product = make_product()
        body = {"items": [{"product_id": product.id, "quantity": 1}]}

        assert client.post("/api/bills", json=body).status_code == 400
        assert client.post("/api/bills", json={**body, "seller_id": 999}).status_code == 404

    def test_income_failure_becomes_warning(self, client, make_product, make_seller, monkeypatch):
        product = make_product(stock=10)
        seller = make_seller()

        def _fail(**kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(income_service, "record_income", _fail)

        response = client.post("/api/bills", json=_bill_body(seller, (product, 1)))

        assert response.status_code == 201
        assert response.get_json()["warnings"] == [{"effect": "income", "error": "ledger offline"}]

    def test_payment_and_cancel(self, client, make_product, make_seller, stock_of):
        product = make_product(stock=10, price_cents=200)
        seller = make_seller()
        bill_id = client.post("/api/bills", json=_bill_body(seller, (product, 1))).get_json()["id"]

        paid = client.post(f"/api/bills/{bill_id}/payments", json={"amount_cents": 50})
        zero = client.post(f"/api/bills/{bill_id}/payments", json={"amount_cents": 0})
        cancelled = client.delete(f"/api/bills/{bill_id}")

        assert paid.get_json()["remaining_amount_cents"] == 150
        assert zero.status_code == 400
        assert cancelled.get_json()["bill"]["status"] == "cancelled"
        assert stock_of(product.id) == 10

        reopened = client.patch(f"/api/bills/{bill_id}/status", json={"status": "completed"})
        assert reopened.status_code == 400
        client.delete(f"/api/bills/{bill_id}")
        assert stock_of(product.id) == 10

    def test_list_with_pagination(self, client, make_product, make_seller):
        product = make_product(stock=10)
        seller = make_seller()
        for _ in range(3):
            client.post("/api/bills", json=_bill_body(seller, (product, 1)))

        data = client.get("/api/bills?page=1&per_page=2").get_json()

        assert data["count"] == 2
        assert data["pagination"]["total"] == 3

    def test_bad_date_filter(self, client):
        assert client.get("/api/bills?start_date=yesterday").status_code == 400

    def test_last_price_requires_product(self, client):
        assert client.get("/api/bills/customer/1/last-price").status_code == 400


class TestCustomerRoutes:
    def test_create_update_delete(self, client, make_product, make_seller, stock_of, seller_of):
        product = make_product(stock=5)
        seller = make_seller(rate_cents=100)

        created = client.post("/api/customers", json={
            "name": "Hina",
            "type": "online",
            "seller_id": seller.id,
            "products_info": [{"product_id": product.id, "quantity": 2}],
        })
        customer_id = created.get_json()["id"]
        updated = client.put(f"/api/customers/{customer_id}", json={
            "products_info": [{"product_id": product.id, "quantity": 3}],
        })
        detail = client.get(f"/api/customers/{customer_id}").get_json()

        assert created.status_code == 201
        assert updated.status_code == 200
        assert stock_of(product.id) == 2
        assert seller_of(seller.id).commission_cents == 300
        assert [p["quantity"] for p in detail["purchases"]] == [3]

        deleted = client.delete(f"/api/customers/{customer_id}")
        assert deleted.status_code == 200
        assert stock_of(product.id) == 5
        assert seller_of(seller.id).commission_cents == 0

    def test_unknown_field_rejected(self, client):
        response = client.post("/api/customers", json={"name": "X", "type": "online", "vip": True})
        assert response.status_code == 400

    def test_commission_preview(self, client, make_product, make_seller, make_legacy_customer):
        product = make_product()
        seller = make_seller(rate_cents=100)
        make_legacy_customer(seller=seller, lines=[(product, 2)])

        preview = client.get("/api/customers/commissions/preview").get_json()
        backfill = client.post("/api/customers/commissions/backfill").get_json()

        assert preview["would_create"] == 1
        assert backfill["created"] == 1
        assert Sale.query.count() == 1


class TestParcelRoutes:
    def test_status_patch_returns_stock(self, client, make_product, stock_of):
        product = make_product(stock=5)
        created = client.post("/api/parcels", json={
            "tracking_number": "LCS-1",
            "customer_name": "Bilal",
            "address": "Block 6",
            "products": [{"product_id": product.id, "quantity": 2}],
        })
        parcel_id = created.get_json()["id"]

        returned = client.patch(f"/api/parcels/{parcel_id}/status", json={"status": "return"})

        assert created.status_code == 201
        assert returned.get_json()["stock_released"] is True
        assert stock_of(product.id) == 5

    def test_duplicate_tracking_is_400(self, client, make_product):
        product = make_product(stock=5)
        body = {
            "tracking_number": "LCS-1",
            "customer_name": "Bilal",
            "address": "Block 6",
            "products": [{"product_id": product.id, "quantity": 1}],
        }
        client.post("/api/parcels", json=body)

        assert client.post("/api/parcels", json=body).status_code == 400


class TestReturnAndSaleRoutes:
    def test_create_return(self, client, make_product, stock_of):
        product = make_product(stock=0)

        response = client.post("/api/returns", json={
            "product_id": product.id, "quantity": 2, "unit_price_cents": 500, "tracking_id": "RT-1",
        })

        assert response.status_code == 201
        assert response.get_json()["product"]["model"] == product.model
        assert stock_of(product.id) == 2

    def test_manual_sale(self, client, make_product, make_seller):
        product = make_product(stock=3)
        seller = make_seller()
        customer_id = client.post("/api/customers", json={"name": "Buyer", "type": "offline"}).get_json()["id"]

        response = client.post("/api/sales", json={
            "product_id": product.id, "seller_id": seller.id, "customer_id": customer_id, "quantity": 1,
        })

        assert response.status_code == 201
        assert client.get(f"/api/sales?seller_id={seller.id}").get_json()[0]["source_type"] == "manual"


class TestPurchaseBatchRoutes:
    def test_create_list_and_get(self, client, make_product, stock_of):
        product = make_product(stock=1)

        created = client.post("/api/purchase-batches", json={
            "supplier_name": "Karachi Traders",
            "purchase_date": "2024-06-11",
            "items": [{"product_id": product.id, "quantity": 6, "unit_price_cents": 900}],
        })

        assert created.status_code == 201
        body = created.get_json()
        assert body["total_amount_cents"] == 5400
        assert body["items"][0]["model"] == product.model
        assert stock_of(product.id) == 7

        listed = client.get("/api/purchase-batches?start_date=2024-06-11&end_date=2024-06-11")
        assert [b["id"] for b in listed.get_json()] == [body["id"]]
        assert client.get(f"/api/purchase-batches/{body['id']}").status_code == 200
        assert client.get("/api/purchase-batches/999").status_code == 404

    def test_missing_supplier(self, client, make_product):
        product = make_product()
        response = client.post("/api/purchase-batches", json={
            "items": [{"product_id": product.id, "quantity": 1}],
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "Supplier name is required"


class TestSellerRoutes:
    def test_create_and_leaderboard(self, client):
        created = client.post("/api/sellers", json={"name": "Kamran", "commission_rate_cents": 250})

        assert created.status_code == 201
        assert created.get_json()["temporary_password"]
        assert "password_hash" not in created.get_json()["seller"]
        assert client.get("/api/sellers/leaderboard").get_json()[0]["name"] == "Kamran"


class TestCli:
    def test_backfill_dry_run_writes_nothing(self, app, db_session, make_product, make_seller, make_legacy_customer):
        product = make_product()
        seller = make_seller(rate_cents=100)
        make_legacy_customer(seller=seller, lines=[(product, 3)])

        result = app.test_cli_runner().invoke(args=["customers", "backfill-commissions", "--dry-run"])

        assert result.exit_code == 0
        assert "Would create: 1" in result.output
        assert "Total commission (cents): 300" in result.output
        assert Sale.query.count() == 0

    def test_seed_sequence(self, app, db_session, client, make_product, make_seller):
        result = app.test_cli_runner().invoke(args=["bills", "seed-sequence", "--last-number", "1250"])
        assert result.exit_code == 0
        assert "1251" in result.output

        product = make_product()
        seller = make_seller()
        response = client.post("/api/bills", json=_bill_body(seller, (product, 1)))
        assert response.get_json()["bill_number"] == "EM-1251"
