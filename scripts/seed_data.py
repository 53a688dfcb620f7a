#!/usr/bin/env python3
"""
Seed a database with two branches, a handful of products and opening stock.

Drops all tables, recreates them (with append-only triggers on PostgreSQL),
inserts the catalog rows and records one COMPRA per (product, branch)
through FulfillmentService, so the movement log explains every counter.

Usage:
    python3 scripts/seed_data.py
    python3 scripts/seed_data.py --database-url sqlite:///stock.db
"""

import argparse
import sys
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

BRANCHES = [("centro", "Centro"), ("norte", "Norte")]

PRODUCTS = [
    ("concha", "Concha", Decimal("10.50"), 40),
    ("oreja", "Oreja", Decimal("8.50"), 30),
    ("bolillo", "Bolillo", Decimal("3.00"), 120),
    ("pan-integral", "Pan Integral", Decimal("45.00"), 10),
]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the stock kernel database.")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args(argv)

    from stock_kernel.config import load_settings
    from stock_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session_factory,
        init_engine,
        session_scope,
    )
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.domain.dtos import SYSTEM_ACTOR
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.models.catalog import Branch, Product
    from stock_kernel.services.fulfillment_service import FulfillmentService
    from stock_kernel.services.sequence_service import SequenceService

    settings = load_settings(args.config)
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)

    configure_logging(level=settings.log_level)
    init_engine(settings)
    drop_tables()
    create_tables()
    register_immutability_listeners()

    with session_scope() as session:
        for slug, name in BRANCHES:
            session.add(Branch(slug=slug, name=name))
        for slug, name, price, _ in PRODUCTS:
            session.add(Product(slug=slug, name=name, price=price))
        SequenceService(session).initialize_sequences()

    service = FulfillmentService(get_session_factory(), settings=settings)
    for branch_slug, _ in BRANCHES:
        for product_slug, _, _, opening in PRODUCTS:
            service.record_movement(
                "COMPRA",
                opening,
                product_slug,
                to_branch_ref=branch_slug,
                note="opening stock",
                actor=SYSTEM_ACTOR,
            )

    print(f"Seeded {len(BRANCHES)} branches and {len(PRODUCTS)} products.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
