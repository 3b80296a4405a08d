"""
End-to-end scenarios through the CommodityLedger facade.

Each test commits real units of work against a fresh database and checks
the state a second reader would see.
"""

from decimal import Decimal

import pytest

from commodity_kernel.domain.lifecycles import (
    BatchStatus,
    MovementType,
    ProcessingOrderStatus,
)
from commodity_kernel.exceptions import IdempotencyConflictError, OverDeliveryError


class TestContractOverDelivery:
    """1000 MT contract: 400 accepted, a further 700 refused."""

    def test_second_receipt_refused(self, ledger, active_contract):
        item = active_contract(quantity="1000").items[0]

        batch = ledger.receive_goods(
            commodity_code="MAIZE", supplier_ref="SUP-001", location="WH-A",
            weight="400", contract_item_id=item.id,
        )
        assert ledger.contract_fulfillment(item.contract_id).items[0].delivered == Decimal("400")

        with pytest.raises(OverDeliveryError):
            ledger.receive_goods(
                commodity_code="MAIZE", supplier_ref="SUP-001", location="WH-A",
                weight="700", contract_item_id=item.id,
            )

        summary = ledger.contract_fulfillment(item.contract_id)
        assert summary.items[0].delivered == Decimal("400")
        assert summary.items[0].remaining == Decimal("600")
        assert not summary.is_fully_delivered
        assert batch.status == BatchStatus.RECEIVED
        assert batch.received_weight == batch.current_weight == Decimal("400")


class TestPartialTransfer:
    """100 MT batch, 40 MT moved to another warehouse."""

    def test_transfer_40_of_100(self, ledger, approved_batch):
        source = approved_batch("100", location="WH-A")

        result = ledger.transfer_batch(source.id, "WH-B", "40")

        assert result.source_batch.current_weight == Decimal("60")
        assert result.source_batch.status == BatchStatus.APPROVED
        assert result.destination_batch.current_weight == Decimal("40")
        assert result.destination_batch.location == "WH-B"
        assert result.destination_batch.parent_batch_id == source.id
        assert result.movement.quantity == Decimal("40")
        assert ledger.transfer_lineage_total(source.id) == Decimal("100")

        ancestors = ledger.batch_ancestors(result.destination_batch.id)
        assert [n.batch.id for n in ancestors] == [result.destination_batch.id, source.id]


class TestCancelRestoresInventory:
    """A processing order draws 50 MT, then is cancelled while in progress."""

    def test_cancel_in_progress(self, ledger, approved_batch):
        source = approved_batch("120")
        order = ledger.create_processing_order(
            "DRYING", [{"batch_id": source.id, "quantity": "50"}]
        )
        order = ledger.start_processing_order(order.id)
        assert order.status == ProcessingOrderStatus.IN_PROGRESS
        assert ledger.get_batch(source.id).current_weight == Decimal("70")

        order = ledger.cancel_processing_order(order.id, "dryer fault")

        restored = ledger.get_batch(source.id)
        assert order.status == ProcessingOrderStatus.CANCELLED
        assert order.cancelled_at is not None
        assert restored.current_weight == Decimal("120")
        assert restored.status == BatchStatus.APPROVED
        assert [m.movement_type for m in ledger.batch_movements(source.id)] == [
            MovementType.PROCESSING_IN,
            MovementType.PROCESSING_REVERSAL,
        ]


class TestIdempotentReceipt:

    def test_replay_and_conflict(self, ledger, active_contract):
        item = active_contract(quantity="1000").items[0]
        fields = dict(
            commodity_code="MAIZE", supplier_ref="SUP-001", location="WH-A",
            weight="250", contract_item_id=item.id, idempotency_key="GRN-0001",
        )

        first = ledger.receive_goods(**fields)
        second = ledger.receive_goods(**fields)

        assert second.id == first.id
        assert ledger.contract_fulfillment(item.contract_id).items[0].delivered == Decimal("250")

        with pytest.raises(IdempotencyConflictError):
            ledger.receive_goods(**{**fields, "weight": "260"})


class TestFullLifecycle:

    def test_contract_to_cleaned_output(self, ledger, active_contract):
        item = active_contract(quantity="500", unit_price="400").items[0]
        received = ledger.receive_goods(
            commodity_code="MAIZE", supplier_ref="SUP-001", location="WH-A",
            weight="500", contract_item_id=item.id,
        )
        batch = ledger.approve_batch(received.id)
        moved = ledger.transfer_batch(batch.id, "WH-B", "200").destination_batch
        order = ledger.create_processing_order(
            "CLEANING", [{"batch_id": moved.id, "quantity": "200"}]
        )
        ledger.start_processing_order(order.id)

        completion = ledger.complete_processing_order(
            order.id, [{"weight": "190", "grade": "A"}, {"weight": "6", "grade": "C"}]
        )

        assert completion.order.process_loss == Decimal("4")
        assert ledger.get_batch(moved.id).status == BatchStatus.CONSUMED
        assert ledger.contract_fulfillment(item.contract_id).is_fully_delivered
        lineage = ledger.batch_ancestors(completion.output_batches[0].id)
        assert {n.batch.id for n in lineage} == {
            completion.output_batches[0].id, moved.id, batch.id
        }
        positions = {(p.location, p.commodity_code): p.total_weight for p in ledger.stock_positions()}
        assert positions == {("WH-A", "MAIZE"): Decimal("300"), ("WH-B", "MAIZE"): Decimal("196")}
        descendants = ledger.batch_descendants(batch.id)
        assert max(n.depth for n in descendants) == 2
