"""Wallet reads, payout methods and withdrawal requests."""

from swiftline.common.logging import logger
from swiftline.services.session.service import SessionManager
from swiftline.services.transactions.service import build_query, with_model, with_rows
from swiftline.services.transport.schemas import Envelope
from swiftline.services.wallet.schemas import NewPaymentMethod, PaymentMethod, Wallet, Withdrawal

PAYMENT_METHODS_ENDPOINT = "/api/v1/wallet/payment-methods"


class WalletService:
    """Every wallet call is authenticated and goes through the session manager."""

    def __init__(self, session_manager: SessionManager) -> None:
        self.session_manager = session_manager

    async def get_wallet(self) -> Envelope:
        response = await self.session_manager.authorized_send("/api/v1/wallet")
        return with_model(response, Wallet)

    async def get_buyer_wallet(self) -> Envelope:
        response = await self.session_manager.authorized_send("/api/v1/buyer/wallet")
        return with_model(response, Wallet)

    async def list_payment_methods(self) -> Envelope:
        response = await self.session_manager.authorized_send(PAYMENT_METHODS_ENDPOINT)
        return with_rows(response, "paymentMethods", PaymentMethod)

    async def add_payment_method(self, method: NewPaymentMethod) -> Envelope:
        return await self.session_manager.authorized_send(
            PAYMENT_METHODS_ENDPOINT,
            "POST",
            method.model_dump(by_alias=True, exclude_none=True),
        )

    async def request_withdrawal(self, amount: float, payment_method_id: str) -> Envelope:
        """Ask for a payout; non-positive amounts are refused locally."""

        if amount <= 0:
            return Envelope.failure("Withdrawal amount must be positive")
        response = await self.session_manager.authorized_send(
            "/api/v1/wallet/withdraw",
            "POST",
            {"amount": amount, "paymentMethodId": payment_method_id},
        )
        if response.success:
            logger.info("withdrawal_requested amount=%s payment_method_id=%s", amount, payment_method_id)
        return response

    async def list_withdrawals(self, page: int = 1, limit: int = 20) -> Envelope:
        response = await self.session_manager.authorized_send(
            f"/api/v1/wallet/withdrawals?{build_query(page=page, limit=limit)}"
        )
        return with_rows(response, "withdrawals", Withdrawal)
