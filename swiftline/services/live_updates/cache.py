"""In-memory transaction cache with self-clearing "recently changed" markers."""

import asyncio
from dataclasses import dataclass

from swiftline.common.config import settings
from swiftline.services.transactions.schemas import Transaction


@dataclass
class CacheEntry:
    """A cached transaction plus its transient change marker.

    `generation` increases on every marked change; a decay only clears the
    marker if no newer change happened since it was scheduled.
    """

    transaction: Transaction
    recently_changed: bool = False
    changed_at: float | None = None
    generation: int = 0


class TransactionCache:
    """Ordered id -> entry map shared by full fetches and live merges."""

    def __init__(self, window: float | None = None) -> None:
        self.window = window if window is not None else settings.recently_changed_window_seconds
        self._entries: dict[str, CacheEntry] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def __contains__(self, transaction_id: str) -> bool:
        return transaction_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, transaction_id: str) -> CacheEntry | None:
        return self._entries.get(transaction_id)

    def ids(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def replace_all(self, transactions: list[Transaction]) -> None:
        """Swap in a freshly fetched collection.

        Markers that are still active on re-fetched ids carry over together
        with their generation, so the pending decay still clears them on time.
        """

        fresh: dict[str, CacheEntry] = {}
        for transaction in transactions:
            entry = CacheEntry(transaction=transaction)
            previous = self._entries.get(transaction.id)
            if previous is not None:
                entry.generation = previous.generation
                if previous.recently_changed:
                    entry.recently_changed = True
                    entry.changed_at = previous.changed_at
            fresh[transaction.id] = entry

        for transaction_id in self._entries.keys() - fresh.keys():
            self._cancel_decay(transaction_id)
        self._entries = fresh

    def remove(self, transaction_id: str) -> CacheEntry | None:
        self._cancel_decay(transaction_id)
        return self._entries.pop(transaction_id, None)

    def mark_changed(self, transaction_id: str) -> None:
        """Set the marker and (re)arm its decay; the latest change wins."""

        entry = self._entries[transaction_id]
        loop = asyncio.get_running_loop()
        entry.generation += 1
        entry.recently_changed = True
        entry.changed_at = loop.time()
        self._cancel_decay(transaction_id)
        self._timers[transaction_id] = loop.call_later(
            self.window, self._decay, transaction_id, entry.generation
        )

    def _decay(self, transaction_id: str, generation: int) -> None:
        entry = self._entries.get(transaction_id)
        if entry is None or entry.generation != generation:
            return
        entry.recently_changed = False
        self._timers.pop(transaction_id, None)

    def _cancel_decay(self, transaction_id: str) -> None:
        timer = self._timers.pop(transaction_id, None)
        if timer is not None:
            timer.cancel()

    def close(self) -> None:
        for transaction_id in list(self._timers):
            self._cancel_decay(transaction_id)
