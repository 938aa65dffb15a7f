"""HTTP surface tests over in-memory components."""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from kungfu import Error

from convergent import idempotency as I
from convergent.api import create_app, is_valid_key
from convergent.orders import SettlementOutcome

BODY = {"productId": "P-1", "quantity": 2, "customerId": "C-1"}


@pytest.fixture
def client(settings, memory_components):
    app = create_app(settings, components=memory_components)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


class TestKeyValidation:
    @pytest.mark.parametrize("key", ["abc", "order-1", "a_b.c:d", "A" * 256])
    def test_valid(self, key):
        assert is_valid_key(key)

    @pytest.mark.parametrize("key", ["", "has space", "slash/key", "A" * 257, "ключ"])
    def test_invalid(self, key):
        assert not is_valid_key(key)


class TestCreateOrder:
    def test_creates_order(self, client, payment):
        response = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})

        assert response.status_code == 200
        assert response.headers["Idempotency-Key"] == "key-1"
        body = response.json()
        assert body["status"] == "CONFIRMED"
        assert body["productId"] == "P-1"
        assert body["customerId"] == "C-1"
        assert body["quantity"] == 2
        assert body["totalAmount"] == "3000"
        assert body["orderId"]
        assert len(payment.calls) == 1

    def test_retry_returns_same_body(self, client, payment):
        first = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})
        second = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})

        assert second.status_code == 200
        assert second.json() == first.json()
        assert len(payment.calls) == 1

    def test_without_key(self, client, payment):
        first = client.post("/api/orders", json=BODY)
        second = client.post("/api/orders", json=BODY)

        assert first.status_code == 200
        assert "Idempotency-Key" not in first.headers
        assert first.json()["orderId"] != second.json()["orderId"]
        assert len(payment.calls) == 2

    def test_business_failures_are_200(self, client, payment):
        payment.outcome = SettlementOutcome.FAILED
        response = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})

        assert response.status_code == 200
        assert response.json()["status"] == "PAYMENT_FAILED"

    def test_key_reuse_with_other_body_is_422(self, client):
        client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})
        response = client.post(
            "/api/orders",
            json={**BODY, "quantity": 3},
            headers={"Idempotency-Key": "key-1"},
        )

        assert response.status_code == 422
        assert response.headers["Idempotency-Key"] == "key-1"
        assert response.json() == {
            "status": 422,
            "error": "Unprocessable Entity",
            "message": "Idempotency-Key was already used with a different request body",
        }

    def test_in_flight_is_409(self, client, store, clock):
        fp = I.fingerprint(BODY)
        asyncio.run(store.try_create("key-1", fp, clock() + timedelta(hours=1)))

        response = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert response.headers["Idempotency-Key"] == "key-1"
        assert response.json()["message"] == (
            "A request with this Idempotency-Key is currently being processed"
        )

    def test_malformed_key_is_400(self, client, payment):
        response = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "bad key!"})

        assert response.status_code == 400
        assert "Idempotency-Key must be 1-256" in response.json()["message"]
        assert payment.calls == []

    def test_validation_errors_are_400(self, client, payment):
        response = client.post(
            "/api/orders",
            json={"productId": " ", "quantity": 0, "customerId": "C-1"},
            headers={"Idempotency-Key": "key-1"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert set(body["details"]) == {"productId", "quantity"}
        assert payment.calls == []

    def test_store_error_is_500(self, client, store, monkeypatch):
        async def broken(key, fingerprint, expires_at):
            return Error(I.StoreError("database unavailable"))

        monkeypatch.setattr(store, "try_create", broken)
        response = client.post("/api/orders", json=BODY, headers={"Idempotency-Key": "key-1"})

        assert response.status_code == 500
        assert response.json()["message"] == "An unexpected error occurred"


class TestQueries:
    def test_get_order(self, client):
        created = client.post("/api/orders", json=BODY).json()

        response = client.get(f"/api/orders/{created['orderId']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing_order_is_404(self, client):
        response = client.get("/api/orders/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"

    def test_list_by_customer(self, client):
        client.post("/api/orders", json=BODY)
        client.post("/api/orders", json={**BODY, "customerId": "C-2"})

        response = client.get("/api/orders", params={"customerId": "C-1"})

        assert response.status_code == 200
        assert [o["customerId"] for o in response.json()] == ["C-1"]

    def test_list_by_status(self, client, inventory):
        client.post("/api/orders", json=BODY)
        inventory.quantity = 0
        client.post("/api/orders", json=BODY)

        response = client.get("/api/orders", params={"status": "out_of_stock"})

        assert response.status_code == 200
        assert [o["status"] for o in response.json()] == ["OUT_OF_STOCK"]

    def test_list_requires_filter(self, client):
        assert client.get("/api/orders").status_code == 400

    def test_list_rejects_unknown_status(self, client):
        response = client.get("/api/orders", params={"status": "SHIPPED"})
        assert response.status_code == 400
