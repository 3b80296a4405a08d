"""TransferEngine: exact conservation between source and destination batches."""

from decimal import Decimal

import pytest

from commodity_kernel.domain.lifecycles import BatchStatus, MovementType
from commodity_kernel.domain.dtos import GoodsReceipt
from commodity_kernel.exceptions import (
    InsufficientQuantityError,
    InvalidBatchStateError,
    ValidationError,
)
from commodity_kernel.services.transfer_engine import TransferEngine


@pytest.fixture
def transfers(session, deterministic_clock, test_actor_id):
    return TransferEngine(session, deterministic_clock, actor_id=test_actor_id)


class TestTransfer:

    def test_partial_transfer(self, session_batch, transfers):
        source = session_batch("100", location="WH-A")

        movement, source, destination = transfers.transfer(source.id, "WH-B", Decimal("40"))

        assert source.current_weight == Decimal("60")
        assert source.status == BatchStatus.APPROVED
        assert destination.location == "WH-B"
        assert destination.current_weight == Decimal("40")
        assert destination.status == BatchStatus.APPROVED
        assert destination.parent_batch_id == source.id
        assert movement.movement_type == MovementType.TRANSFER
        assert movement.quantity == Decimal("40")
        assert movement.source_batch_id == source.id
        assert movement.destination_batch_id == destination.id
        assert (movement.source_location, movement.destination_location) == ("WH-A", "WH-B")

    def test_full_transfer_freezes_source(self, session_batch, transfers):
        source = session_batch("100")

        _, source, destination = transfers.transfer(source.id, "WH-B", Decimal("100"))

        assert source.status == BatchStatus.TRANSFERRED
        assert source.current_weight == Decimal("0")
        assert source.is_frozen
        assert destination.current_weight == Decimal("100")

    def test_chained_transfers(self, session_batch, transfers):
        source = session_batch("100", location="WH-A")
        _, _, at_b = transfers.transfer(source.id, "WH-B", Decimal("70"))

        _, at_b, at_c = transfers.transfer(at_b.id, "WH-C", Decimal("70"))

        assert at_b.status == BatchStatus.TRANSFERRED
        assert at_c.parent_batch_id == at_b.id
        assert at_c.cost_per_unit == source.cost_per_unit

    def test_same_location_refused(self, session_batch, transfers):
        source = session_batch(location="WH-A")

        with pytest.raises(ValidationError):
            transfers.transfer(source.id, "WH-A", Decimal("1"))

    def test_blank_destination_refused(self, session_batch, transfers):
        with pytest.raises(ValidationError):
            transfers.transfer(session_batch().id, "  ", Decimal("1"))

    def test_insufficient_weight(self, session_batch, transfers):
        source = session_batch("100")

        with pytest.raises(InsufficientQuantityError):
            transfers.transfer(source.id, "WH-B", Decimal("150"))

    def test_received_batch_refused(self, allocation, transfers):
        batch = allocation.register_receipt(
            GoodsReceipt("MAIZE", "SUP-001", "WH-A", Decimal("10")),
            cost_per_unit=Decimal("1"),
            currency="USD",
        )

        with pytest.raises(InvalidBatchStateError):
            transfers.transfer(batch.id, "WH-B", Decimal("5"))

    def test_logs_completion(self, session_batch, transfers, captured_logs):
        transfers.transfer(session_batch().id, "WH-B", Decimal("5"))

        records = [r for r in captured_logs() if r["message"] == "transfer_completed"]
        assert records[0]["to_location"] == "WH-B"
        assert records[0]["quantity"] == "5.000"

    def test_quantity_normalized_at_entry(self, session_batch, transfers):
        movement, source, destination = transfers.transfer(session_batch("10").id, "WH-B", "2.5")

        assert destination.received_weight == Decimal("2.500")
        assert movement.quantity == Decimal("2.500")
        assert source.current_weight == Decimal("7.500")

    @pytest.mark.parametrize("quantity", ["0", "-1", "abc"])
    def test_non_positive_quantity_rejected(self, session_batch, transfers, quantity):
        source = session_batch("10")

        with pytest.raises(ValidationError) as exc_info:
            transfers.transfer(source.id, "WH-B", quantity)

        assert exc_info.value.field_errors[0]["field"] == "quantity"
        assert transfers.allocation.registry.get(source.id).current_weight == Decimal("10")
