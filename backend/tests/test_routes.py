"""
HTTP surface: status codes and response shapes for the main flows.
"""

from sqlalchemy.exc import DisconnectionError

from stockledger.services import offline_queue, purchase_service


def _unreachable():
    raise DisconnectionError("connection refused")


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["database"]["status"] == "healthy"
    assert body["offline_pending"] == 0


def test_create_and_fetch_item(client, db_session):
    resp = client.post("/api/items", json={"name": "Cable", "sku": "C-1", "sale_price": "4.99"})
    assert resp.status_code == 201
    item = resp.get_json()["item"]
    assert item["current_quantity"] == 0

    resp = client.get(f"/api/items/{item['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["item"]["name"] == "Cable"

    resp = client.post("/api/items", json={"name": "cable"})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "duplicate_name"


def test_unknown_item_is_404(client, db_session):
    resp = client.get("/api/items/4040/stock")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "not_found"


def test_purchase_then_sale_flow(client, db_session, item, vendor):
    resp = client.post("/api/purchases", json={
        "vendor_id": vendor.id,
        "lines": [{"item_id": item.id, "quantity": 4, "purchase_rate": 5}],
        "payment_status": "paid",
    }, headers={"X-Actor": "alice"})
    assert resp.status_code == 201
    purchase = resp.get_json()["purchase"]
    assert purchase["payment_status"] == "paid"
    assert purchase["created_by"] == "alice"

    resp = client.post("/api/sales", json={"lines": [{"item_id": item.id, "quantity": 3}]})
    assert resp.status_code == 201
    sale = resp.get_json()["sale"]
    assert sale["status"] == "completed"

    stock = client.get(f"/api/items/{item.id}/stock").get_json()
    journal = client.get(f"/api/items/{item.id}/stock/journal").get_json()
    assert stock["quantity"] == journal["quantity"] == 1
    assert stock["source"] == "fast_path"

    resp = client.post("/api/sales", json={"lines": [{"item_id": item.id, "quantity": 2}]})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "insufficient_stock"
    assert body["details"] == {"item_id": item.id, "available": 1, "requested": 2}

    resp = client.post(f"/api/sales/{sale['id']}/cancel", json={"reason": "test"})
    assert resp.status_code == 200
    assert resp.get_json()["sale"]["status"] == "cancelled"


def test_empty_cart_is_400(client, db_session):
    resp = client.post("/api/sales", json={"lines": []})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "validation_error"


def test_return_route(client, db_session, item, stock):
    stock(item, 5)
    sale = client.post("/api/sales", json={"lines": [{"item_id": item.id, "quantity": 2}]}).get_json()["sale"]

    resp = client.post(f"/api/sales/{sale['id']}/returns", json={"lines": [{"item_id": item.id, "quantity": 3}]})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "return_not_allowed"

    resp = client.post(f"/api/sales/{sale['id']}/returns", json={"lines": [{"item_id": item.id, "quantity": 2}]})
    assert resp.status_code == 201
    assert len(client.get(f"/api/sales/{sale['id']}/returns").get_json()["returns"]) == 1


def test_deferred_purchase_is_202(client, db_session, item, vendor, monkeypatch):
    monkeypatch.setattr(purchase_service, "begin_atomic", _unreachable)

    resp = client.post("/api/purchases", json={
        "vendor_id": vendor.id,
        "lines": [{"item_id": item.id, "quantity": 1, "purchase_rate_cents": 100}],
    })

    assert resp.status_code == 202
    body = resp.get_json()
    assert body["status"] == "deferred_offline"
    assert body["kind"] == "purchase"

    events = client.get("/api/offline/events").get_json()
    assert events["count"] == 1
    assert events["items"][0]["temp_id"] == body["temp_id"]

    monkeypatch.undo()
    drained = client.post("/api/offline/drain").get_json()
    assert drained["synced"] == 1
    assert client.get(f"/api/items/{item.id}/stock").get_json()["quantity"] == 1


def test_vendor_payment_and_balance(client, db_session, item, vendor):
    client.post("/api/purchases", json={
        "vendor_id": vendor.id,
        "lines": [{"item_id": item.id, "quantity": 2, "purchase_rate_cents": 1000}],
    })

    resp = client.post(f"/api/vendors/{vendor.id}/payments", json={"amount_cents": 500})
    assert resp.status_code == 201

    balance = client.get(f"/api/vendors/{vendor.id}/balance").get_json()
    assert balance["stored_cents"] == balance["computed_cents"] == 1500

    resp = client.delete(f"/api/vendors/{vendor.id}")
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "balance_not_zero"


def test_customer_transaction_route(client, db_session, customer):
    resp = client.post(f"/api/customers/{customer.id}/transactions", json={"amount_cents": 2000, "type": "charge"})
    assert resp.status_code == 201

    ledger = client.get(f"/api/customers/{customer.id}/ledger").get_json()
    assert ledger["outstanding_balance_cents"] == 2000
    assert len(ledger["entries"]) == 1

    assert client.get("/api/customers/9999/ledger").status_code == 404


def test_reconciliation_routes(client, db_session, item, vendor):
    resp = client.post("/api/reconciliation/run", json={})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["items"]["checked"] == 1
    assert body["counterparties"]["checked"] == 1

    assert client.post(f"/api/reconciliation/items/{item.id}").status_code == 200
    assert client.post("/api/reconciliation/vendor/999").status_code == 404
    assert client.post("/api/reconciliation/supplier/1").status_code == 400


def test_remove_unknown_offline_event(client, db_session):
    assert client.delete("/api/offline/events/OFFLINE-nope").status_code == 404


def test_valuation_route(client, db_session):
    assert client.get("/api/items/valuation?method=fifo").status_code == 200
    assert client.get("/api/items/valuation?method=nope").status_code == 400


def test_drain_while_another_runs_is_409(client, db_session):
    offline_queue.acquire_drain_lease("cli-worker")

    resp = client.post("/api/offline/drain")

    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "drain_in_progress"
    assert body["retryable"] is True
