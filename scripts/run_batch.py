#!/usr/bin/env python3
"""
Batch jobs for the fulfillment engine.

Usage:
    python scripts/run_batch.py recalculate          # Recompute every open order's status
    python scripts/run_batch.py sync                 # Pull orders from the last day
    python scripts/run_batch.py sync --days 7        # Pull orders from the last week

Ctrl-C during recalculate stops after the current order.
"""

import argparse
import signal
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add backend to path so we can import modules
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import structlog

from exceptions import AppError
from services.order_status_service import get_order_status_service
from services.ingestion_service import get_ingestion_service

logger = structlog.get_logger(__name__)


def recalculate() -> int:
    cancel_event = threading.Event()

    def _stop(signum, frame):
        logger.warning("recalculation_cancel_requested")
        cancel_event.set()

    signal.signal(signal.SIGINT, _stop)

    try:
        result = get_order_status_service().recalculate_all(cancel_event=cancel_event)
    except AppError as e:
        print(f"✗ {e.message}")
        return 1

    print(f"✓ Processed {result.processed} orders: {result.succeeded} ok, {result.failed} failed")
    if result.aborted:
        print("  Stopped early (cancelled)")
    for error in result.errors[:10]:
        print(f"  - {error}")
    return 0 if result.failed == 0 else 1


def sync(days: int) -> int:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    result = get_ingestion_service().sync_orders(since=since)

    print(f"✓ Synced {result.orders_synced}/{result.orders_received} orders, {result.lines_saved} lines")
    print(f"  Decisions: {result.decisions_applied} applied, {result.decisions_failed} failed")
    if result.lines_skipped_no_product:
        print(f"  Skipped {result.lines_skipped_no_product} lines with unknown SKU: {', '.join(result.skipped_skus_sample)}")
    if result.aborted:
        print(f"✗ Aborted: {result.abort_reason}")
        return 1
    return 0


# ===================
# MAIN
# ===================

def main():
    parser = argparse.ArgumentParser(description="Fulfillment engine batch jobs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("recalculate", help="Recompute flow status for all open orders")

    sync_parser = subparsers.add_parser("sync", help="Pull orders from the sales channel")
    sync_parser.add_argument(
        "--days",
        type=int,
        default=1,
        help="How many days back to pull (default: 1)"
    )

    args = parser.parse_args()

    if args.command == "recalculate":
        sys.exit(recalculate())
    sys.exit(sync(args.days))


if __name__ == "__main__":
    main()
