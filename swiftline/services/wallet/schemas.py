"""Wallet balances, payout methods and withdrawals."""

from datetime import datetime

from pydantic import Field

from swiftline.services.transactions.schemas import ApiModel


class Wallet(ApiModel):
    """Balances in KES. Buyer wallets also report spend totals."""

    available_balance: float = 0
    pending_balance: float = 0
    total_spent: float | None = None
    total_transactions: int | None = None
    currency: str = "KES"


class PaymentMethod(ApiModel):
    id: str
    type: str
    provider: str | None = None
    account_number: str | None = None
    account_name: str | None = None
    is_default: bool = False


class NewPaymentMethod(ApiModel):
    """Body for `POST /wallet/payment-methods`."""

    type: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    account_number: str = Field(min_length=1)
    account_name: str = Field(min_length=1)
    is_default: bool | None = None


class Withdrawal(ApiModel):
    id: str
    amount: float = Field(ge=0)
    status: str
    payment_method_id: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
