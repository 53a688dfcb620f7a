#!/usr/bin/env python3
"""
Replay the stock movement log and the held order items against the stored
inventory counters, and report every (product, branch) pair that drifted.

Settings come from $STOCK_KERNEL_CONFIG / STOCK_KERNEL_* (see
stock_kernel.config); --database-url overrides the URL.

Exit status: 0 when consistent, 1 when drift was found.

Usage:
    python3 scripts/verify_ledger.py
    python3 scripts/verify_ledger.py --product concha --branch centro
    python3 scripts/verify_ledger.py --database-url sqlite:///stock.db
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify the stock ledger against its history.")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--product", help="Product id or slug")
    parser.add_argument("--branch", help="Branch id or slug")
    args = parser.parse_args(argv)

    from stock_kernel.config import load_settings
    from stock_kernel.db.engine import get_session_factory, init_engine
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.services.fulfillment_service import FulfillmentService

    settings = load_settings(args.config)
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)

    configure_logging(level=settings.log_level)
    init_engine(settings)
    register_immutability_listeners()

    service = FulfillmentService(get_session_factory(), settings=settings)
    drifts = service.verify_ledger(args.product, args.branch)

    if not drifts:
        print("Ledger consistent.")
        return 0

    print(f"{len(drifts)} pair(s) drifted:")
    print(f"  {'product':36}  {'branch':36}  {'qty':>8}  {'replay':>8}  {'rsv':>6}  {'held':>6}")
    for d in drifts:
        print(
            f"  {str(d.product_id):36}  {str(d.branch_id):36}  "
            f"{d.stored_quantity:>8}  {d.replayed_quantity:>8}  "
            f"{d.stored_reserved:>6}  {d.held_reserved:>6}"
        )
        for note in d.notes:
            print(f"      - {note}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
