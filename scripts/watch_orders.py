"""Load buyer or seller orders and replay live updates from a JSON-lines file.

Each line is one `{"orderId", "status", "timestamp"}` event. Handy for
checking how a burst of pushed updates settles in the cache.
"""

import argparse
import asyncio
import json
from pathlib import Path

from swiftline.client import SwiftlineClient
from swiftline.common.logging import configure_logging


async def read_events(path: Path, delay: float):
    """Yield events from a JSON-lines file, pausing `delay` seconds between them."""

    for line in path.read_text().splitlines():
        if not line.strip():
            continue
        yield json.loads(line)
        await asyncio.sleep(delay)


def print_orders(client: SwiftlineClient) -> None:
    for entry in client.cache.entries():
        marker = "*" if entry.recently_changed else " "
        txn = entry.transaction
        print(f"{marker} {txn.id} {txn.status:<10} {txn.currency} {txn.amount} {sorted(txn.permitted_actions)}")


async def run(role: str, events: Path | None, delay: float) -> None:
    async with SwiftlineClient() as client:
        response = await client.transactions.sync_orders(role, client.live_updates)
        if not response.success:
            print(f"error={response.error} code={response.code}")
            return
        print_orders(client)
        if events is None:
            return
        applied = await client.live_updates.consume(read_events(events, delay))
        print(f"applied={applied}")
        print_orders(client)


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch escrow orders with replayed live updates.")
    parser.add_argument("--role", choices=["buyer", "seller"], default="buyer")
    parser.add_argument("--events", type=Path, default=None, help="JSON-lines update file")
    parser.add_argument("--delay", type=float, default=0.5)
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(args.role, args.events, args.delay))


if __name__ == "__main__":
    main()
