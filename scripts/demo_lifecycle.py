#!/usr/bin/env python3
"""
Lifecycle demo: contract -> receipt -> approval -> transfer -> processing.

Runs one maize purchase end to end against a SQLite file (or any URL given
with --db-url), printing each step and, with --logs, the structured JSON
log lines the kernel emits.

Usage:
    python3 scripts/demo_lifecycle.py                     # fresh demo.db
    python3 scripts/demo_lifecycle.py --db-url sqlite:///x.db
    python3 scripts/demo_lifecycle.py --config ledger.yaml
    python3 scripts/demo_lifecycle.py --logs              # show JSON logs
"""

import argparse
import sys
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///demo.db"

W = 72


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def field(name: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{name}: {value}")


def show_batch(label: str, batch) -> None:
    print(f"  {label}: {batch.batch_number}")
    field("status", batch.status.value)
    field("location", batch.location)
    field("weight", f"{batch.current_weight} / {batch.received_weight}")


def run(ledger) -> int:
    from commodity_kernel.exceptions import OverDeliveryError

    banner("1. Contract for 1000 MT maize")
    contract = ledger.create_contract(
        "SUP-ACME",
        [{"commodity_code": "MAIZE", "quantity": Decimal("1000"), "unit_price": Decimal("500")}],
        currency="USD",
        terms="FOB origin, 30 days",
    )
    ledger.transition_contract_status(contract.id, "SUBMITTED")
    contract = ledger.transition_contract_status(contract.id, "ACTIVE")
    item = contract.items[0]
    field("contract", contract.contract_number)
    field("status", contract.status.value)
    field("total value", f"{contract.total_value} {contract.currency}")

    banner("2. Receive 400 MT against the contract")
    token = f"GRN-{uuid4().hex[:8]}"
    batch = ledger.receive_goods(
        commodity_code="MAIZE",
        supplier_ref="SUP-ACME",
        location="WH-NORTH",
        weight=Decimal("400"),
        contract_item_id=item.id,
        idempotency_key=token,
        crop_year=2024,
    )
    show_batch("received", batch)
    replay = ledger.receive_goods(
        commodity_code="MAIZE",
        supplier_ref="SUP-ACME",
        location="WH-NORTH",
        weight=Decimal("400"),
        contract_item_id=item.id,
        idempotency_key=token,
        crop_year=2024,
    )
    field("replay returned same batch", replay.id == batch.id)

    try:
        ledger.receive_goods(
            commodity_code="MAIZE",
            supplier_ref="SUP-ACME",
            location="WH-NORTH",
            weight=Decimal("700"),
            contract_item_id=item.id,
        )
    except OverDeliveryError as exc:
        field("700 MT receipt refused", exc.code)
    fulfilment = ledger.contract_fulfillment(contract.id)
    field("delivered", fulfilment.items[0].delivered)

    banner("3. Quality sign-off")
    batch = ledger.approve_batch(batch.id)
    show_batch("approved", batch)

    banner("4. Transfer 150 MT to WH-SOUTH")
    result = ledger.transfer_batch(batch.id, "WH-SOUTH", Decimal("150"))
    field("movement", result.movement.reference_number)
    show_batch("source", result.source_batch)
    show_batch("destination", result.destination_batch)
    field("lineage total", ledger.transfer_lineage_total(batch.id))

    banner("5. Clean 200 MT at WH-NORTH")
    order = ledger.create_processing_order(
        "CLEANING", [{"batch_id": batch.id, "quantity": Decimal("200")}]
    )
    order = ledger.start_processing_order(order.id)
    field("order", order.order_number)
    field("status", order.status.value)
    completion = ledger.complete_processing_order(
        order.id, [{"weight": Decimal("194.5"), "grade": "A"}]
    )
    field("process loss", completion.order.process_loss)
    for out in completion.output_batches:
        show_batch("output", out)
        field("cost per unit", out.cost_per_unit)

    banner("6. Stock positions")
    for pos in ledger.stock_positions():
        field(f"{pos.location:10} {pos.commodity_code:8}", f"{pos.total_weight} MT in {pos.batch_count} batch(es)")

    banner("7. Lineage of the cleaned output")
    for node in ledger.batch_ancestors(completion.output_batches[0].id):
        field("  " * node.depth + node.batch.batch_number, node.batch.status.value)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Commodity batch lifecycle demo")
    parser.add_argument("--db-url", default=None, help=f"Database URL (default {DB_URL})")
    parser.add_argument("--config", default=None, help="YAML ledger config file")
    parser.add_argument("--logs", action="store_true", help="Emit structured JSON logs to stderr")
    args = parser.parse_args()

    from commodity_kernel.config import LedgerConfig, load_config
    from commodity_kernel.services.ledger import CommodityLedger

    config = load_config(args.config) if args.config else LedgerConfig(database_url=DB_URL)
    if args.db_url:
        config = replace(config, database_url=args.db_url)
    if not args.logs:
        config = replace(config, log_level="ERROR")

    ledger = CommodityLedger.from_config(config)
    return run(ledger)


if __name__ == "__main__":
    sys.exit(main())
