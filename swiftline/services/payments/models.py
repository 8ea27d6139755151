"""Payment attempt lifecycle: idle -> pending -> success | failed."""

from dataclasses import dataclass
from datetime import datetime, timezone

IDLE = "idle"
PENDING = "pending"
SUCCESS = "success"
FAILED = "failed"


@dataclass
class PaymentAttempt:
    """Local record of one STK push authorisation for a transaction."""

    transaction_id: str
    state: str = IDLE
    checkout_reference: str | None = None
    started_at: datetime | None = None
    error: str | None = None
    timed_out: bool = False

    def begin(self, checkout_reference: str | None) -> None:
        if self.state != IDLE:
            raise ValueError(f"Cannot start a payment attempt from {self.state}")
        self.state = PENDING
        self.checkout_reference = checkout_reference
        self.started_at = datetime.now(timezone.utc)
        self.error = None
        self.timed_out = False

    def succeed(self) -> None:
        if self.state != PENDING:
            raise ValueError(f"Cannot succeed a payment attempt from {self.state}")
        self.state = SUCCESS

    def fail(self, error: str | None = None) -> None:
        if self.state not in (IDLE, PENDING):
            raise ValueError(f"Cannot fail a payment attempt from {self.state}")
        self.state = FAILED
        self.error = error

    def reset(self) -> None:
        """Explicit user retry after a failure."""

        if self.state != FAILED:
            raise ValueError(f"Only a failed payment attempt can be retried, not {self.state}")
        self.state = IDLE
        self.checkout_reference = None
        self.started_at = None
        self.error = None
        self.timed_out = False

    @property
    def is_terminal(self) -> bool:
        return self.state in (SUCCESS, FAILED)
