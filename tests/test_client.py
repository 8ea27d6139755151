"""End-to-end flows through the `SwiftlineClient` facade."""

import httpx
import pytest

from conftest import BASE_URL, envelope
from swiftline.client import SwiftlineClient
from swiftline.common.config import ClientSettings
from swiftline.common.metrics import render_metrics
from swiftline.common.phone import mask, normalize_msisdn
from swiftline.common.startup import _safe_value, log_startup_config
from swiftline.services.payments.models import SUCCESS
from swiftline.services.session.models import MemoryCredentialStore


@pytest.fixture
def client(server):
    config = ClientSettings(
        api_base_url=BASE_URL,
        payment_poll_interval_seconds=0.01,
        payment_poll_ceiling_seconds=1.0,
        recently_changed_window_seconds=0.05,
    )
    return SwiftlineClient(
        config=config,
        store=MemoryCredentialStore(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server.handler)),
    )


@pytest.mark.asyncio
async def test_demo_transaction_needs_no_network(server, client):
    async with client:
        fetched = await client.transactions.get_transaction("demo-transaction")
        attempt = client.new_payment_attempt("demo-transaction")
        paid = await client.payments.initiate(attempt, "254712345678", fetched.data.amount)

    assert "showPaymentWidget" in fetched.data.permitted_actions
    assert paid.success is False
    assert server.requests == []


@pytest.mark.asyncio
async def test_login_pay_and_track(server, client):
    server.add(
        "POST",
        "/api/v1/auth/login",
        envelope({"user": {"id": "u1"}, "accessToken": "a", "refreshToken": "r"}),
    )
    server.add("GET", "/api/v1/transactions/t1", envelope({"id": "t1", "status": "PENDING", "amount": 5000}))
    server.add("POST", "/api/v1/payments/initiate-stk", envelope({"checkoutRequestID": "abc"}))
    server.add("POST", "/api/v1/payments/check-status", envelope({"status": "PAID"}))
    server.add("GET", "/api/v1/buyer/orders", envelope({"orders": [{"id": "t1", "status": "PAID", "amount": 5000}]}))

    async with client:
        await client.session.login("0712345678", "123456")
        txn = (await client.transactions.get_transaction("t1")).data
        attempt = client.new_payment_attempt(txn.id)
        await client.payments.initiate(attempt, "254712345678", txn.amount, status=txn.status)
        await client.poller.active("t1").wait()
        await client.transactions.sync_orders("buyer", client.live_updates)
        client.live_updates.apply_update({"orderId": "t1", "status": "ACCEPTED"})

        assert attempt.state == SUCCESS
        assert client.cache.get("t1").transaction.status == "ACCEPTED"
        assert client.cache.get("t1").recently_changed is True

    initiate = next(r for r in server.requests if r.url.path == "/api/v1/payments/initiate-stk")
    assert initiate.headers["Authorization"] == "Bearer a"


@pytest.mark.asyncio
async def test_buyer_dashboard_loads_sections_independently(server, client):
    client.session.session.access_token = "a"
    server.add("GET", "/api/v1/buyer/orders", envelope([{"id": "t1", "status": "SHIPPED", "amount": 5000}]))
    server.add("GET", "/api/v1/buyer/disputes", envelope(status_code=500, success=False, error="boom"))
    server.add("GET", "/api/v1/buyer/wallet", envelope({"availableBalance": 0, "pendingBalance": 5000}))

    async with client:
        dashboard = await client.load_buyer_dashboard()

        assert [order.id for order in dashboard.orders] == ["t1"]
        assert client.live_updates.subscribed == {"t1"}
        assert dashboard.disputes == []
        assert dashboard.wallet.pending_balance == 5000
        assert dashboard.errors == ["boom"]


def test_metrics_exposed():
    assert b"swiftline_http_requests" in render_metrics()


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("254712345678", "254712345678"),
        ("+254 712 345 678", "254712345678"),
        ("0712-345-678", "254712345678"),
        ("712345678", "254712345678"),
    ],
)
def test_msisdn_normalisation(raw, expected):
    assert normalize_msisdn(raw) == expected


@pytest.mark.parametrize("raw", ["", "2547123", "07123", "hello"])
def test_msisdn_rejects_garbage(raw):
    with pytest.raises(ValueError):
        normalize_msisdn(raw)


def test_mask():
    assert mask("254712345678") == "********5678"
    assert mask("abc") == "***"
    assert mask(None) == ""


def test_startup_config_logged_with_redaction(caplog):
    caplog.set_level("INFO", logger="swiftline")

    log_startup_config(ClientSettings(api_base_url=BASE_URL), ["api_base_url", "refresh_token"])

    assert BASE_URL in caplog.text
    assert "<unset>" in caplog.text
    assert _safe_value("otel_api_key", "k-123") == "<redacted>"
