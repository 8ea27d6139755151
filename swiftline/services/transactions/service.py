"""Transaction snapshots, order listings and status-gated lifecycle actions."""

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote, urlencode

from pydantic import BaseModel, ValidationError

from swiftline.common.logging import logger
from swiftline.common.state_machine import (
    PENDING,
    SHOW_BUYER_CONFIRMATION,
    SHOW_PAYMENT_WIDGET,
    SHOW_SELLER_ACCEPT_OR_REJECT,
    SHOW_SHIPPING_ENTRY,
    derive_permitted_actions,
)
from swiftline.services.live_updates.service import LiveUpdateReconciler
from swiftline.services.session.service import SessionManager
from swiftline.services.transactions.schemas import Counterparty, Dispute, ShippingInfo, Transaction
from swiftline.services.transport.schemas import Envelope, ErrorCode

DEMO_TRANSACTION_ID = "demo-transaction"


def demo_transaction() -> Transaction:
    """Local preview transaction; it is never fetched, paid or polled."""

    return Transaction(
        id=DEMO_TRANSACTION_ID,
        status=PENDING,
        amount=5000,
        currency="KES",
        item_name="iPhone 13 Pro Max",
        item_description="Brand new, sealed in box. 256GB Sierra Blue.",
        seller_id="demo-seller",
        expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        seller=Counterparty(id="demo-seller", name="Demo Seller", phone="+254712345678"),
    )


def parse_rows(data: Any, model: type[BaseModel], key: str) -> list:
    """Accept either a bare list or a `{key: [...]}` wrapper; skip bad rows."""

    if isinstance(data, dict):
        data = data.get(key) or []
    if not isinstance(data, list):
        return []
    rows = []
    for item in data:
        try:
            rows.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("row_skipped model=%s error_count=%s", model.__name__, exc.error_count())
    return rows


def parse_transactions(data: Any, key: str = "orders") -> list[Transaction]:
    return parse_rows(data, Transaction, key)


def with_rows(response: Envelope, key: str, model: type[BaseModel] = Transaction) -> Envelope:
    """Replace a listing envelope's `data` with parsed rows."""

    if not response.success:
        return response
    return response.model_copy(update={"data": parse_rows(response.data, model, key)})


def with_model(response: Envelope, model: type[BaseModel]) -> Envelope:
    """Replace a single-object envelope's `data` with a parsed model."""

    if not response.success:
        return response
    try:
        parsed = model.model_validate(response.data)
    except ValidationError:
        return Envelope.failure(
            f"{model.__name__} payload did not match the expected shape",
            ErrorCode.INVALID_RESPONSE,
            http_status=response.http_status,
        )
    return response.model_copy(update={"data": parsed})


def build_query(**params) -> str:
    return urlencode({k: v for k, v in params.items() if v is not None})


class TransactionService:
    """Read and drive transactions through the session manager."""

    def __init__(self, session_manager: SessionManager) -> None:
        self.session_manager = session_manager

    async def get_transaction(self, transaction_id: str) -> Envelope:
        """Fetch a full snapshot; `data` holds a `Transaction` on success."""

        if transaction_id == DEMO_TRANSACTION_ID:
            return Envelope(success=True, data=demo_transaction())

        response = await self.session_manager.authorized_send(
            f"/api/v1/transactions/{quote(transaction_id, safe='')}",
            require_auth=False,
        )
        return with_model(response, Transaction)

    async def create_transaction(self, item_name: str, amount: int, description: str | None = None) -> Envelope:
        body: dict[str, Any] = {"itemName": item_name, "amount": amount}
        if description:
            body["description"] = description
        return await self.session_manager.authorized_send("/api/v1/transactions", "POST", body)

    async def list_transactions(
        self,
        role: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Envelope:
        query = build_query(role=role, status=status, page=page, limit=limit)
        response = await self.session_manager.authorized_send(f"/api/v1/transactions?{query}")
        return with_rows(response, "transactions")

    async def list_buyer_orders(self, page: int = 1, limit: int = 20) -> Envelope:
        response = await self.session_manager.authorized_send(
            f"/api/v1/buyer/orders?{build_query(page=page, limit=limit)}"
        )
        return with_rows(response, "orders")

    async def list_seller_orders(self, status: str | None = None, page: int = 1, limit: int = 20) -> Envelope:
        response = await self.session_manager.authorized_send(
            f"/api/v1/seller/orders?{build_query(status=status, page=page, limit=limit)}"
        )
        return with_rows(response, "orders")

    async def get_order_details(self, order_id: str) -> Envelope:
        return await self.session_manager.authorized_send(f"/api/v1/seller/orders/{quote(order_id, safe='')}")

    async def list_buyer_disputes(self) -> Envelope:
        response = await self.session_manager.authorized_send("/api/v1/buyer/disputes")
        return with_rows(response, "disputes", Dispute)

    async def get_seller_stats(self) -> Envelope:
        """Seller dashboard aggregates; `data` is passed through as served."""

        return await self.session_manager.authorized_send("/api/v1/seller/stats")

    async def pay_transaction(
        self,
        transaction: Transaction,
        payment_method: str,
        phone: str,
        buyer_name: str | None = None,
        buyer_email: str | None = None,
    ) -> Envelope:
        """Guest checkout through the transaction's own pay endpoint."""

        if transaction.id == DEMO_TRANSACTION_ID:
            return Envelope.failure("The demo transaction cannot be paid. Connect to a real backend.")
        denied = self._not_permitted(transaction, SHOW_PAYMENT_WIDGET)
        if denied:
            return denied
        body = {"paymentMethod": payment_method, "phone": phone}
        if buyer_name:
            body["buyerName"] = buyer_name
        if buyer_email:
            body["buyerEmail"] = buyer_email
        return await self.session_manager.authorized_send(
            f"/api/v1/transactions/{quote(transaction.id, safe='')}/pay",
            "POST",
            body,
            require_auth=False,
        )

    async def sync_orders(self, role: str, reconciler: LiveUpdateReconciler) -> Envelope:
        """Refetch the buyer or seller listing and load it into the live cache."""

        if role == "buyer":
            response = await self.list_buyer_orders()
        elif role == "seller":
            response = await self.list_seller_orders()
        else:
            raise ValueError(f"Unknown order role: {role}")
        if response.success:
            reconciler.load_snapshot(response.data)
        return response

    @staticmethod
    def _not_permitted(transaction: Transaction, action: str) -> Envelope | None:
        if action in derive_permitted_actions(transaction.status):
            return None
        return Envelope.failure(f"Action not available while transaction is {transaction.status}")

    async def accept_order(self, transaction: Transaction) -> Envelope:
        denied = self._not_permitted(transaction, SHOW_SELLER_ACCEPT_OR_REJECT)
        if denied:
            return denied
        return await self.session_manager.authorized_send(
            f"/api/v1/seller/orders/{quote(transaction.id, safe='')}/accept", "POST"
        )

    async def reject_order(self, transaction: Transaction, reason: str | None = None) -> Envelope:
        denied = self._not_permitted(transaction, SHOW_SELLER_ACCEPT_OR_REJECT)
        if denied:
            return denied
        return await self.session_manager.authorized_send(
            f"/api/v1/seller/orders/{quote(transaction.id, safe='')}/reject", "POST", {"reason": reason}
        )

    async def add_shipping_info(self, transaction: Transaction, info: ShippingInfo) -> Envelope:
        denied = self._not_permitted(transaction, SHOW_SHIPPING_ENTRY)
        if denied:
            return denied
        return await self.session_manager.authorized_send(
            f"/api/v1/seller/orders/{quote(transaction.id, safe='')}/shipping",
            "POST",
            info.model_dump(by_alias=True, exclude_none=True),
        )

    async def confirm_delivery(self, transaction: Transaction) -> Envelope:
        denied = self._not_permitted(transaction, SHOW_BUYER_CONFIRMATION)
        if denied:
            return denied
        return await self.session_manager.authorized_send(
            f"/api/v1/transactions/{quote(transaction.id, safe='')}/confirm", "POST"
        )

    async def confirm_delivery_with_otp(self, transaction: Transaction, delivery_otp: str) -> Envelope:
        denied = self._not_permitted(transaction, SHOW_BUYER_CONFIRMATION)
        if denied:
            return denied
        return await self.session_manager.authorized_send(
            "/api/v1/payments/confirm-delivery",
            "POST",
            {"transactionId": transaction.id, "deliveryOTP": delivery_otp},
        )
