"""Transaction/order payloads as served by the escrow API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from swiftline.common.state_machine import derive_permitted_actions, parse_status


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown fields ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Counterparty(ApiModel):
    """Buyer or seller reference; read-only for the client."""

    id: str | None = None
    name: str | None = None
    phone: str | None = None


class Transaction(ApiModel):
    """One escrow transaction (the buyer/seller order views use the same shape).

    `status` keeps the raw server string so an unknown value can still be
    displayed; `known_status` is None in that case.
    """

    id: str
    status: str
    amount: int = Field(default=0, ge=0)
    currency: str = "KES"
    item_name: str | None = None
    item_description: str | None = None
    seller_id: str | None = None
    buyer_id: str | None = None
    buyer_name: str | None = None
    buyer_phone: str | None = None
    seller: Counterparty | None = None
    buyer: Counterparty | None = None
    courier_name: str | None = None
    tracking_number: str | None = None
    delivery_proof_urls: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None

    @property
    def known_status(self) -> str | None:
        return parse_status(self.status)

    @property
    def permitted_actions(self) -> frozenset[str]:
        return derive_permitted_actions(self.status)


class ShippingInfo(ApiModel):
    """Seller-entered courier details for `POST /seller/orders/:id/shipping`."""

    courier_name: str = Field(min_length=1)
    tracking_number: str = Field(min_length=1)
    estimated_delivery_date: str | None = None
    notes: str | None = None


class DisputedItem(ApiModel):
    item_name: str | None = None
    amount: int = Field(default=0, ge=0)
    seller: Counterparty | None = None


class Dispute(ApiModel):
    """A buyer-raised dispute and the transaction it concerns."""

    id: str
    transaction_id: str | None = None
    status: str
    reason: str | None = None
    transaction: DisputedItem | None = None
    created_at: datetime | None = None
