"""Tests for the httpx collaborator adapters."""

import json
from decimal import Decimal

import httpx
import pytest

from convergent.orders import (
    CollaboratorError,
    HttpInventoryClient,
    HttpPaymentClient,
    SettlementOutcome,
)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://collaborator", transport=httpx.MockTransport(handler))


class TestInventoryClient:
    async def test_parses_stock(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/api/inventory/P-1"
            return httpx.Response(
                200,
                json={
                    "productId": "P-1",
                    "productName": "Widget",
                    "available": True,
                    "quantity": 7,
                    "unitPrice": 1500.00,
                },
            )

        async with client_for(handler) as http:
            stock = await HttpInventoryClient(http).check("P-1")

        assert stock.product_id == "P-1"
        assert stock.product_name == "Widget"
        assert stock.available is True
        assert stock.quantity == 7
        assert stock.unit_price == Decimal("1500")

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, text="unavailable"),
            httpx.Response(404, json={"error": "not found"}),
            httpx.Response(200, content=b""),
            httpx.Response(200, content=b"<html>"),
            httpx.Response(200, json=[1, 2, 3]),
            httpx.Response(200, json={"productId": "P-1"}),
        ],
    )
    async def test_bad_responses_raise(self, response):
        async with client_for(lambda request: response) as http:
            with pytest.raises(CollaboratorError) as exc:
                await HttpInventoryClient(http).check("P-1")
        assert exc.value.collaborator == "inventory"

    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as http:
            with pytest.raises(CollaboratorError, match="request failed"):
                await HttpInventoryClient(http).check("P-1")


class TestPaymentClient:
    async def test_posts_settlement(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"paymentId": "pay-1", "transactionId": "txn-1", "status": "SUCCESS"},
            )

        async with client_for(handler) as http:
            settlement = await HttpPaymentClient(http).settle("o-1", "C-1", Decimal("3000"))

        assert seen["path"] == "/api/payments"
        assert seen["body"] == {
            "orderId": "o-1",
            "customerId": "C-1",
            "amount": 3000,
            "currency": "JPY",
        }
        assert settlement.outcome == SettlementOutcome.SUCCESS
        assert settlement.succeeded
        assert settlement.transaction_id == "txn-1"
        assert settlement.payment_id == "pay-1"

    async def test_currency_is_configurable(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "FAILED"})

        async with client_for(handler) as http:
            settlement = await HttpPaymentClient(http, currency="EUR").settle("o-1", "C-1", Decimal("10"))

        assert seen["body"]["currency"] == "EUR"
        assert settlement.outcome == SettlementOutcome.FAILED
        assert not settlement.succeeded

    async def test_unknown_status_raises(self):
        async with client_for(lambda request: httpx.Response(200, json={"status": "MAYBE"})) as http:
            with pytest.raises(CollaboratorError, match="malformed"):
                await HttpPaymentClient(http).settle("o-1", "C-1", Decimal("10"))

    async def test_error_status_raises(self):
        async with client_for(lambda request: httpx.Response(500, text="oops")) as http:
            with pytest.raises(CollaboratorError, match="HTTP 500"):
                await HttpPaymentClient(http).settle("o-1", "C-1", Decimal("10"))
