"""Escrow client engine entrypoint.

Wires transport, session, transactions, wallet, payments and live updates around one
shared transaction cache:

    async with SwiftlineClient() as client:
        await client.session.login("254712345678", "123456")
        await client.transactions.sync_orders("buyer", client.live_updates)
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import httpx

from swiftline.common.config import ClientSettings, settings as default_settings
from swiftline.services.live_updates.cache import TransactionCache
from swiftline.services.live_updates.service import LiveUpdateReconciler
from swiftline.services.payments.models import PaymentAttempt
from swiftline.services.payments.service import PaymentPoller, PaymentService
from swiftline.services.session.models import CredentialStore, FileCredentialStore
from swiftline.services.session.service import SessionManager
from swiftline.services.transactions.schemas import Dispute, Transaction
from swiftline.services.transactions.service import TransactionService
from swiftline.services.transport.service import Transport
from swiftline.services.wallet.schemas import Wallet
from swiftline.services.wallet.service import WalletService


@dataclass
class BuyerDashboard:
    orders: list[Transaction] = field(default_factory=list)
    disputes: list[Dispute] = field(default_factory=list)
    wallet: Wallet | None = None
    errors: list[str] = field(default_factory=list)


class SwiftlineClient:
    """Owns every engine component for one signed-in client instance."""

    def __init__(
        self,
        config: ClientSettings | None = None,
        store: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or default_settings
        self.transport = Transport(
            base_url=self.config.api_base_url,
            timeout=self.config.request_timeout_seconds,
            client=http_client,
            service_name=self.config.service_name,
        )
        if store is None:
            store = FileCredentialStore(Path(self.config.credential_store_path).expanduser())
        self.session = SessionManager(
            self.transport,
            store=store,
            on_session_expired=on_session_expired,
            service_name=self.config.service_name,
        )
        self.transactions = TransactionService(self.session)
        self.wallet = WalletService(self.session)
        self.poller = PaymentPoller(
            self.session,
            interval=self.config.payment_poll_interval_seconds,
            ceiling=self.config.payment_poll_ceiling_seconds,
            service_name=self.config.service_name,
        )
        self.payments = PaymentService(self.session, self.poller)
        self.cache = TransactionCache(window=self.config.recently_changed_window_seconds)
        self.live_updates = LiveUpdateReconciler(self.cache, service_name=self.config.service_name)

    def new_payment_attempt(self, transaction_id: str) -> PaymentAttempt:
        return PaymentAttempt(transaction_id=transaction_id)

    async def load_buyer_dashboard(self) -> BuyerDashboard:
        """Fetch orders, disputes and wallet together; orders feed the live cache.

        A failed section leaves its default in place and records the error.
        """

        orders, disputes, wallet = await asyncio.gather(
            self.transactions.list_buyer_orders(),
            self.transactions.list_buyer_disputes(),
            self.wallet.get_buyer_wallet(),
        )
        dashboard = BuyerDashboard()
        if orders.success:
            self.live_updates.load_snapshot(orders.data)
            dashboard.orders = orders.data
        if disputes.success:
            dashboard.disputes = disputes.data
        if wallet.success:
            dashboard.wallet = wallet.data
        dashboard.errors = [
            response.error or response.code or "Request failed"
            for response in (orders, disputes, wallet)
            if not response.success
        ]
        return dashboard

    async def close(self) -> None:
        """Stop pollers and decay timers, then close the HTTP client."""

        self.poller.cancel_all()
        self.live_updates.close()
        await self.transport.close()

    async def __aenter__(self) -> "SwiftlineClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
