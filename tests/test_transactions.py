"""Transaction snapshots, listings and status-gated lifecycle actions."""

import json

import pytest

from conftest import envelope
from swiftline.common.state_machine import SHOW_PAYMENT_WIDGET
from swiftline.services.live_updates.cache import TransactionCache
from swiftline.services.live_updates.service import LiveUpdateReconciler
from swiftline.services.transactions.schemas import ShippingInfo, Transaction
from swiftline.services.transactions.service import (
    DEMO_TRANSACTION_ID,
    TransactionService,
    demo_transaction,
    parse_transactions,
)
from swiftline.services.transport.schemas import ErrorCode

SNAPSHOT = {
    "id": "t1",
    "status": "PAID",
    "amount": 5000,
    "currency": "KES",
    "itemName": "Desk lamp",
    "sellerId": "s1",
    "seller": {"name": "Wanjiru", "phone": "+254700000001"},
    "paidAt": "2026-10-16T12:00:00Z",
    "createdAt": "2026-10-16T11:00:00Z",
}


@pytest.fixture
def transactions(session_manager):
    return TransactionService(session_manager)


@pytest.mark.asyncio
async def test_demo_transaction_served_locally(server, transactions):
    result = await transactions.get_transaction(DEMO_TRANSACTION_ID)

    assert result.success
    assert result.data.status == "PENDING"
    assert result.data.amount == 5000
    assert SHOW_PAYMENT_WIDGET in result.data.permitted_actions
    assert server.requests == []


@pytest.mark.asyncio
async def test_snapshot_fetched_without_credentials(server, transactions):
    server.add("GET", "/api/v1/transactions/t1", envelope(SNAPSHOT))

    result = await transactions.get_transaction("t1")

    assert isinstance(result.data, Transaction)
    assert result.data.item_name == "Desk lamp"
    assert result.data.seller.name == "Wanjiru"
    assert result.data.paid_at.year == 2026
    assert "Authorization" not in server.requests[0].headers


@pytest.mark.asyncio
async def test_unknown_status_renders_fallback(server, transactions):
    server.add("GET", "/api/v1/transactions/t1", envelope({**SNAPSHOT, "status": "ESCALATED"}))

    result = await transactions.get_transaction("t1")

    assert result.success
    assert result.data.known_status is None
    assert result.data.permitted_actions == frozenset()


@pytest.mark.asyncio
async def test_malformed_snapshot(server, transactions):
    server.add("GET", "/api/v1/transactions/t1", envelope({"status": "PAID"}))

    result = await transactions.get_transaction("t1")

    assert result.code == ErrorCode.INVALID_RESPONSE.value


@pytest.mark.asyncio
async def test_missing_transaction_passes_server_error_through(server, transactions):
    server.add("GET", "/api/v1/transactions/nope", envelope(status_code=404, success=False, error="Not found"))

    result = await transactions.get_transaction("nope")

    assert result.error == "Not found"


def test_listing_accepts_list_or_wrapper():
    rows = [SNAPSHOT, {"id": "broken"}]

    assert [t.id for t in parse_transactions(rows)] == ["t1"]
    assert [t.id for t in parse_transactions({"orders": rows})] == ["t1"]
    assert parse_transactions({"orders": None}) == []
    assert parse_transactions("nonsense") == []


@pytest.mark.asyncio
async def test_seller_listing_query(server, transactions):
    server.add("GET", "/api/v1/seller/orders", envelope({"orders": [SNAPSHOT]}))

    result = await transactions.list_seller_orders(status="PAID")

    assert [t.id for t in result.data] == ["t1"]
    assert server.requests[0].url.params["status"] == "PAID"
    assert server.requests[0].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_sync_orders_loads_cache_and_subscribes(server, transactions):
    server.add("GET", "/api/v1/buyer/orders", envelope([SNAPSHOT, {**SNAPSHOT, "id": "t2"}]))
    reconciler = LiveUpdateReconciler(TransactionCache(window=0.05))

    result = await transactions.sync_orders("buyer", reconciler)

    assert result.success
    assert reconciler.cache.ids() == ["t1", "t2"]
    assert reconciler.subscribed == {"t1", "t2"}


@pytest.mark.asyncio
async def test_sync_orders_failure_keeps_cache(server, transactions):
    server.add("GET", "/api/v1/buyer/orders", envelope(status_code=500, success=False, error="boom"))
    reconciler = LiveUpdateReconciler(TransactionCache(window=0.05))
    reconciler.load_snapshot([Transaction(id="keep", status="PAID")])

    result = await transactions.sync_orders("buyer", reconciler)

    assert result.success is False
    assert reconciler.cache.ids() == ["keep"]


@pytest.mark.asyncio
async def test_accept_only_when_paid(server, transactions):
    server.add("POST", "/api/v1/seller/orders/t1/accept", envelope({"status": "ACCEPTED"}))
    paid = Transaction.model_validate(SNAPSHOT)
    shipped = paid.model_copy(update={"status": "SHIPPED"})

    assert (await transactions.accept_order(paid)).success
    denied = await transactions.accept_order(shipped)

    assert denied.success is False
    assert server.count(path="/api/v1/seller/orders/t1/accept") == 1


@pytest.mark.asyncio
async def test_shipping_info_sent_in_camel_case(server, transactions):
    server.add("POST", "/api/v1/seller/orders/t1/shipping", envelope({"status": "SHIPPED"}))
    accepted = Transaction.model_validate({**SNAPSHOT, "status": "ACCEPTED"})

    await transactions.add_shipping_info(accepted, ShippingInfo(courier_name="G4S", tracking_number="TRK1"))

    assert json.loads(server.requests[0].content) == {"courierName": "G4S", "trackingNumber": "TRK1"}


@pytest.mark.asyncio
async def test_buyer_confirmation_gated_on_delivery(server, transactions):
    server.add("POST", "/api/v1/payments/confirm-delivery", envelope({"status": "CONFIRMED"}))
    delivered = Transaction.model_validate({**SNAPSHOT, "status": "DELIVERED"})
    paid = Transaction.model_validate(SNAPSHOT)

    assert (await transactions.confirm_delivery_with_otp(delivered, "4321")).success
    assert (await transactions.confirm_delivery(paid)).success is False
    assert json.loads(server.requests[0].content) == {"transactionId": "t1", "deliveryOTP": "4321"}
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_sync_orders_rejects_unknown_role(transactions):
    with pytest.raises(ValueError):
        await transactions.sync_orders("courier", LiveUpdateReconciler())


@pytest.mark.asyncio
async def test_buyer_disputes_parsed_from_wrapper(server, transactions):
    dispute = {
        "id": "d1",
        "transactionId": "t1",
        "status": "OPEN",
        "reason": "Item not as described",
        "transaction": {"itemName": "Desk lamp", "amount": 5000, "seller": {"name": "Wanjiru"}},
    }
    server.add("GET", "/api/v1/buyer/disputes", envelope({"disputes": [dispute, {"reason": "no id"}]}))

    result = await transactions.list_buyer_disputes()

    assert [d.id for d in result.data] == ["d1"]
    assert result.data[0].transaction.seller.name == "Wanjiru"


@pytest.mark.asyncio
async def test_seller_stats_passed_through(server, transactions):
    server.add("GET", "/api/v1/seller/stats", envelope({"totalOrders": 4, "totalRevenue": 20000}))

    result = await transactions.get_seller_stats()

    assert result.data == {"totalOrders": 4, "totalRevenue": 20000}
    assert server.requests[0].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_guest_pay_only_while_payable(server, transactions):
    server.add("POST", "/api/v1/transactions/t1/pay", envelope({"checkoutRequestID": "abc"}))
    pending = Transaction.model_validate({**SNAPSHOT, "status": "PENDING"})
    paid = Transaction.model_validate(SNAPSHOT)

    result = await transactions.pay_transaction(pending, "MPESA", "254712345678", buyer_name="Amina")
    refused = await transactions.pay_transaction(paid, "MPESA", "254712345678")

    assert result.success
    assert refused.success is False
    assert len(server.requests) == 1
    assert json.loads(server.requests[0].content) == {
        "paymentMethod": "MPESA",
        "phone": "254712345678",
        "buyerName": "Amina",
    }
    assert "Authorization" not in server.requests[0].headers


@pytest.mark.asyncio
async def test_guest_pay_refuses_demo_transaction(server, transactions):
    result = await transactions.pay_transaction(demo_transaction(), "MPESA", "254712345678")

    assert result.success is False
    assert server.requests == []
