"""STK push initiation and payment status reconciliation.

After a successful initiation the phone owner has to approve the prompt, so
the client polls the transaction status until it resolves or a hard ceiling
expires. Each poll runs as one asyncio task; cancelling its handle tears down
the tick loop and the ceiling together.
"""

import asyncio
import inspect
from typing import Any, Callable

from swiftline.common.config import settings
from swiftline.common.logging import logger, transaction_id_ctx
from swiftline.common.metrics import payment_attempts_total, payment_status_checks_total
from swiftline.common.phone import mask, normalize_msisdn
from swiftline.common.state_machine import CANCELLED, PAID, SHOW_PAYMENT_WIDGET, derive_permitted_actions, parse_status
from swiftline.services.payments.models import IDLE, PENDING, PaymentAttempt
from swiftline.services.session.service import SessionManager
from swiftline.services.transactions.service import DEMO_TRANSACTION_ID
from swiftline.services.transport.schemas import Envelope, ErrorCode

INITIATE_STK_ENDPOINT = "/api/v1/payments/initiate-stk"
CHECK_STATUS_ENDPOINT = "/api/v1/payments/check-status"
SIMULATE_PAYMENT_ENDPOINT = "/api/v1/payments/simulate-payment"

Callback = Callable[[], Any]


async def _invoke(callback: Callback | None) -> None:
    if callback is None:
        return
    result = callback()
    if inspect.isawaitable(result):
        await result


class PollHandle:
    """Cancellation handle for one transaction's status polling."""

    def __init__(self, transaction_id: str, attempt: PaymentAttempt, task: asyncio.Task) -> None:
        self.transaction_id = transaction_id
        self.attempt = attempt
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> None:
        """Wait until polling stops for any reason, without raising."""

        await asyncio.wait({self._task})


class PaymentPoller:
    """Polls `check-status` on a fixed cadence, one poller per transaction."""

    def __init__(
        self,
        session_manager: SessionManager,
        interval: float | None = None,
        ceiling: float | None = None,
        service_name: str | None = None,
    ) -> None:
        self.session_manager = session_manager
        self.interval = interval if interval is not None else settings.payment_poll_interval_seconds
        self.ceiling = ceiling if ceiling is not None else settings.payment_poll_ceiling_seconds
        self.service_name = service_name or settings.service_name
        self._active: dict[str, PollHandle] = {}

    def start_polling(
        self,
        transaction_id: str,
        attempt: PaymentAttempt | None = None,
        on_success: Callback | None = None,
        on_failure: Callback | None = None,
    ) -> PollHandle:
        """Start polling, replacing any poller already running for this id."""

        if transaction_id == DEMO_TRANSACTION_ID:
            raise ValueError("The demo transaction is never polled")
        if attempt is None:
            attempt = PaymentAttempt(transaction_id=transaction_id, state=PENDING)
        if attempt.state != PENDING:
            raise ValueError(f"Polling requires a pending payment attempt, not {attempt.state}")

        self.cancel(transaction_id)
        task = asyncio.create_task(
            self._run(attempt, on_success, on_failure),
            name=f"payment-poll:{transaction_id}",
        )
        handle = PollHandle(transaction_id, attempt, task)
        self._active[transaction_id] = handle
        task.add_done_callback(lambda _: self._forget(handle))
        logger.info("payment_polling_started transaction_id=%s", transaction_id)
        return handle

    def _forget(self, handle: PollHandle) -> None:
        if self._active.get(handle.transaction_id) is handle:
            del self._active[handle.transaction_id]

    def active(self, transaction_id: str) -> PollHandle | None:
        return self._active.get(transaction_id)

    def cancel(self, transaction_id: str) -> None:
        handle = self._active.pop(transaction_id, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for transaction_id in list(self._active):
            self.cancel(transaction_id)

    async def _run(
        self,
        attempt: PaymentAttempt,
        on_success: Callback | None,
        on_failure: Callback | None,
    ) -> str | None:
        transaction_id_ctx.set(attempt.transaction_id)
        try:
            status = await asyncio.wait_for(self._poll(attempt), timeout=self.ceiling)
        except asyncio.TimeoutError:
            if attempt.state != PENDING:
                return None
            # The prompt may still be approved later; leave the attempt pending.
            attempt.timed_out = True
            payment_attempts_total.labels(service=self.service_name, outcome="timed_out").inc()
            logger.warning(
                "payment_polling_ceiling_reached transaction_id=%s ceiling_s=%s",
                attempt.transaction_id,
                self.ceiling,
            )
            return None

        # Callbacks run outside the ceiling.
        callback = on_success if status == PAID else on_failure
        try:
            await _invoke(callback)
        except Exception as exc:
            logger.exception(
                "payment_callback_failed transaction_id=%s status=%s: %s",
                attempt.transaction_id,
                status,
                exc,
            )
        return status

    async def _poll(self, attempt: PaymentAttempt) -> str:
        while True:
            await asyncio.sleep(self.interval)
            status = await self.check_status(attempt.transaction_id)
            if status == PAID:
                attempt.succeed()
                payment_attempts_total.labels(service=self.service_name, outcome="success").inc()
                logger.info("payment_confirmed transaction_id=%s", attempt.transaction_id)
                return status
            if status == CANCELLED:
                attempt.fail("Payment was cancelled")
                payment_attempts_total.labels(service=self.service_name, outcome="failed").inc()
                logger.info("payment_cancelled transaction_id=%s", attempt.transaction_id)
                return status

    async def check_status(self, transaction_id: str) -> str | None:
        """One status check; any failure reads as "not resolved yet"."""

        response = await self.session_manager.authorized_send(
            CHECK_STATUS_ENDPOINT,
            "POST",
            {"transactionId": transaction_id},
            require_auth=False,
        )
        if not response.success or not isinstance(response.data, dict):
            payment_status_checks_total.labels(service=self.service_name, result="error").inc()
            logger.debug("payment_status_check_failed transaction_id=%s code=%s", transaction_id, response.code)
            return None
        status = parse_status(response.data.get("status"))
        payment_status_checks_total.labels(service=self.service_name, result=(status or "unknown").lower()).inc()
        return status


class PaymentService:
    """Initiates STK pushes and hands successful ones to the poller."""

    def __init__(self, session_manager: SessionManager, poller: PaymentPoller) -> None:
        self.session_manager = session_manager
        self.poller = poller

    async def initiate(
        self,
        attempt: PaymentAttempt,
        phone_number: str,
        amount: int,
        status: str | None = None,
        on_success: Callback | None = None,
        on_failure: Callback | None = None,
    ) -> Envelope:
        """Send the STK push and start polling when the server accepts it.

        `status`, when given, is the transaction's current status; payment is
        refused locally unless it exposes the payment widget.
        """

        if attempt.transaction_id == DEMO_TRANSACTION_ID:
            return Envelope.failure("The demo transaction cannot be paid. Connect to a real backend.")
        if status is not None and SHOW_PAYMENT_WIDGET not in derive_permitted_actions(status):
            return Envelope.failure(f"Transaction is not payable while {status}")
        if attempt.state != IDLE:
            raise ValueError(f"Payment attempt already {attempt.state}")
        try:
            msisdn = normalize_msisdn(phone_number)
        except ValueError as exc:
            return Envelope.failure(str(exc))

        response = await self.session_manager.authorized_send(
            INITIATE_STK_ENDPOINT,
            "POST",
            {"transactionId": attempt.transaction_id, "phoneNumber": msisdn, "amount": amount},
        )
        if not (response.success and isinstance(response.data, dict)):
            attempt.fail(response.error or "Failed to initiate payment")
            payment_attempts_total.labels(service=self.poller.service_name, outcome="initiation_failed").inc()
            logger.warning(
                "stk_push_failed transaction_id=%s code=%s",
                attempt.transaction_id,
                response.code,
            )
            if response.success:
                return Envelope.failure(
                    response.error or "Failed to initiate payment",
                    ErrorCode.INVALID_RESPONSE,
                    http_status=response.http_status,
                )
            return response

        attempt.begin(response.data.get("checkoutRequestID"))
        logger.info(
            "stk_push_sent transaction_id=%s phone=%s checkout=%s",
            attempt.transaction_id,
            mask(msisdn),
            attempt.checkout_reference,
        )
        self.poller.start_polling(attempt.transaction_id, attempt, on_success, on_failure)
        return response

    def retry(self, attempt: PaymentAttempt) -> None:
        """Return a failed attempt to idle so a fresh push can be sent."""

        attempt.reset()

    async def simulate_payment(self, transaction_id: str) -> Envelope:
        """Demo/test path that marks the transaction paid server-side."""

        if transaction_id == DEMO_TRANSACTION_ID:
            return Envelope.failure("The demo transaction cannot be paid. Connect to a real backend.")
        return await self.session_manager.authorized_send(
            SIMULATE_PAYMENT_ENDPOINT,
            "POST",
            {"transactionId": transaction_id},
            require_auth=False,
        )
