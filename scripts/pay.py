"""Send an STK push for a transaction and wait for the payment to resolve.

Uses the credentials saved by a previous login. `--simulate` hits the demo
payment endpoint instead of sending a real push.
"""

import argparse
import asyncio
import sys

from swiftline.client import SwiftlineClient
from swiftline.common.config import settings
from swiftline.common.logging import configure_logging
from swiftline.common.metrics import render_metrics
from swiftline.common.startup import log_startup_config
from swiftline.common.tracing import setup_tracing
from swiftline.services.payments.models import SUCCESS


async def run(transaction_id: str, phone: str | None, simulate: bool) -> int:
    """Drive one payment attempt to a terminal state (or the ceiling)."""

    async with SwiftlineClient(on_session_expired=lambda: print("Session expired, log in again")) as client:
        fetched = await client.transactions.get_transaction(transaction_id)
        if not fetched.success:
            print(f"error={fetched.error} code={fetched.code}")
            return 1
        transaction = fetched.data
        print(f"status={transaction.status} amount={transaction.currency} {transaction.amount}")

        if simulate:
            result = await client.payments.simulate_payment(transaction_id)
            print(f"simulated success={result.success} error={result.error}")
            return 0 if result.success else 1

        if not phone:
            raise SystemExit("--phone is required unless --simulate is given")
        attempt = client.new_payment_attempt(transaction_id)
        response = await client.payments.initiate(attempt, phone, transaction.amount, status=transaction.status)
        if not response.success:
            print(f"initiation_failed error={response.error} code={response.code}")
            return 1
        print(f"checkout={attempt.checkout_reference} waiting for approval on the phone")

        handle = client.poller.active(transaction_id)
        if handle is not None:
            await handle.wait()
        print(f"attempt={attempt.state} timed_out={attempt.timed_out}")
        return 0 if attempt.state == SUCCESS else 1


def main() -> None:
    """Parse CLI args and run one payment."""

    parser = argparse.ArgumentParser(description="Pay an escrow transaction via M-Pesa STK push.")
    parser.add_argument("transaction_id")
    parser.add_argument("--phone", default=None, help="Payer phone, e.g. 254712345678")
    parser.add_argument("--simulate", action="store_true", help="Use the demo simulate-payment endpoint")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics on exit")
    parser.add_argument("--trace", action="store_true", help="Export spans over OTLP")
    args = parser.parse_args()

    configure_logging()
    if args.trace:
        setup_tracing(settings.service_name)
    log_startup_config(settings, ["api_base_url", "payment_poll_interval_seconds", "payment_poll_ceiling_seconds"])

    code = asyncio.run(run(args.transaction_id, args.phone, args.simulate))
    if args.metrics:
        sys.stdout.write(render_metrics().decode("utf-8"))
    raise SystemExit(code)


if __name__ == "__main__":
    main()
