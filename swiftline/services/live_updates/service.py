"""Live order-update reconciler.

Folds out-of-band `{orderId, status, timestamp}` events into the transaction
cache. Events are applied in arrival order with no sequence check, so a
reordered channel can leave a stale status in place until the next full
fetch.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable

from pydantic import ValidationError

from swiftline.common.config import settings
from swiftline.common.logging import logger
from swiftline.common.metrics import live_updates_total
from swiftline.common.state_machine import can_transition, milestone_field, parse_status
from swiftline.services.live_updates.cache import TransactionCache
from swiftline.services.transactions.schemas import ApiModel, Transaction


class OrderUpdate(ApiModel):
    """One pushed status change."""

    order_id: str
    status: str
    timestamp: datetime | None = None


class LiveUpdateReconciler:
    """Merges pushed updates into a `TransactionCache` for subscribed ids."""

    def __init__(
        self,
        cache: TransactionCache | None = None,
        recent_limit: int = 20,
        service_name: str | None = None,
    ) -> None:
        self.cache = cache if cache is not None else TransactionCache()
        self.service_name = service_name or settings.service_name
        self.recent_updates: deque[OrderUpdate] = deque(maxlen=recent_limit)
        self._subscribed: frozenset[str] = frozenset()

    @property
    def subscribed(self) -> frozenset[str]:
        return self._subscribed

    def subscribe(self, transaction_ids: Iterable[str]) -> None:
        """Replace the set of ids whose updates are of interest."""

        self._subscribed = frozenset(transaction_ids)
        logger.info("live_updates_subscribed count=%s", len(self._subscribed))

    def load_snapshot(self, transactions: list[Transaction]) -> None:
        """Full-collection replace from a fetch, then track the fetched ids."""

        self.cache.replace_all(transactions)
        self.subscribe(self.cache.ids())

    def _ignore(self, reason: str, order_id: str | None) -> bool:
        live_updates_total.labels(service=self.service_name, result=reason).inc()
        logger.debug("live_update_ignored reason=%s order_id=%s", reason, order_id)
        return False

    def apply_update(self, event: OrderUpdate | dict[str, Any]) -> bool:
        """Merge one update; returns False when the event was ignored."""

        if not isinstance(event, OrderUpdate):
            try:
                event = OrderUpdate.model_validate(event)
            except ValidationError:
                return self._ignore("malformed", None)

        if event.order_id not in self._subscribed:
            return self._ignore("unsubscribed", event.order_id)
        entry = self.cache.get(event.order_id)
        if entry is None:
            return self._ignore("unknown_entity", event.order_id)
        status = parse_status(event.status)
        if status is None:
            return self._ignore("unknown_status", event.order_id)

        current = entry.transaction.status
        if status != current and not can_transition(current, status, administrative=True):
            # Still applied: the server is authoritative, this only flags reordering.
            logger.warning(
                "live_update_off_graph order_id=%s from=%s to=%s", event.order_id, current, status
            )

        timestamp = event.timestamp or datetime.now(timezone.utc)
        changes: dict[str, Any] = {"status": status, "updated_at": timestamp}
        field = milestone_field(status)
        if field is not None:
            changes[field] = timestamp
        entry.transaction = entry.transaction.model_copy(update=changes)
        self.cache.mark_changed(event.order_id)
        self.recent_updates.append(event)
        live_updates_total.labels(service=self.service_name, result="applied").inc()
        return True

    async def consume(self, source: AsyncIterator[dict[str, Any]]) -> int:
        """Drain an update feed into the cache; returns the number applied."""

        applied = 0
        async for raw in source:
            if self.apply_update(raw):
                applied += 1
        return applied

    def close(self) -> None:
        self.cache.close()
