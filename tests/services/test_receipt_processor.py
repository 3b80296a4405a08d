"""
ReceiptProcessor: contract checks, delivery ordering, idempotent replays.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from commodity_kernel.domain.dtos import GoodsReceipt
from commodity_kernel.domain.lifecycles import BatchStatus, ContractStatus
from commodity_kernel.exceptions import (
    ContractItemNotFoundError,
    ContractNotActiveError,
    IdempotencyConflictError,
    OverDeliveryError,
    ValidationError,
)
from commodity_kernel.services.receipt_processor import ReceiptProcessor


@pytest.fixture
def processor(session, deterministic_clock, test_actor_id):
    return ReceiptProcessor(session, deterministic_clock, actor_id=test_actor_id)


def _receipt(weight="400", **overrides):
    fields = dict(
        commodity_code="MAIZE",
        supplier_ref="SUP-001",
        location="WH-A",
        weight=Decimal(weight),
    )
    fields.update(overrides)
    return GoodsReceipt(**fields)


class TestAgainstContract:

    def test_records_delivery_and_prices_from_contract(self, session_contract, processor):
        contract = session_contract(quantity="1000", unit_price="512.5")
        item = contract.items[0]

        outcome = processor.receive_goods(_receipt(contract_item_id=item.id))

        batch = outcome.batch
        assert outcome.created
        assert batch.status == BatchStatus.RECEIVED
        assert batch.contract_id == contract.id
        assert batch.contract_item_id == item.id
        assert batch.cost_per_unit == Decimal("512.5")
        assert batch.currency == "USD"
        assert processor.contracts.get_item(item.id).delivered_quantity == Decimal("400")

    def test_over_delivery_creates_no_batch(self, session_contract, processor):
        item = session_contract(quantity="1000").items[0]
        processor.receive_goods(_receipt("400", contract_item_id=item.id))

        with pytest.raises(OverDeliveryError):
            processor.receive_goods(_receipt("700", contract_item_id=item.id))

        assert processor.contracts.get_item(item.id).delivered_quantity == Decimal("400")
        assert processor.allocation.registry.find_by_number("MAIZE-20240301-002") is None

    def test_draft_contract_refused(self, contract_ledger, processor):
        from commodity_kernel.domain.dtos import ContractItemSpec

        contract = contract_ledger.create_contract(
            "SUP-001", [ContractItemSpec("MAIZE", Decimal("10"), Decimal("1"))], "USD"
        )

        with pytest.raises(ContractNotActiveError) as exc_info:
            processor.receive_goods(_receipt("1", contract_item_id=contract.items[0].id))

        assert exc_info.value.current_status == ContractStatus.DRAFT.value

    def test_draft_contract_allowed_when_configured(
        self, session, contract_ledger, deterministic_clock
    ):
        from commodity_kernel.domain.dtos import ContractItemSpec

        contract = contract_ledger.create_contract(
            "SUP-001", [ContractItemSpec("MAIZE", Decimal("10"), Decimal("1"))], "USD"
        )
        processor = ReceiptProcessor(
            session, deterministic_clock, require_active_contract=False
        )

        outcome = processor.receive_goods(_receipt("1", contract_item_id=contract.items[0].id))

        assert outcome.created

    def test_mismatches_are_aggregated(self, session_contract, processor):
        item = session_contract(commodity_code="MAIZE", supplier_ref="SUP-001").items[0]

        with pytest.raises(ValidationError) as exc_info:
            processor.receive_goods(
                _receipt(
                    commodity_code="WHEAT",
                    supplier_ref="SUP-999",
                    currency="EUR",
                    contract_item_id=item.id,
                )
            )

        fields = {e["field"] for e in exc_info.value.field_errors}
        assert fields == {"commodity_code", "supplier_ref", "currency"}

    def test_commodity_match_is_case_insensitive(self, session_contract, processor):
        item = session_contract(commodity_code="MAIZE").items[0]

        outcome = processor.receive_goods(_receipt(commodity_code="maize", contract_item_id=item.id))

        assert outcome.created

    def test_unknown_item(self, processor):
        with pytest.raises(ContractItemNotFoundError):
            processor.receive_goods(_receipt(contract_item_id=uuid4()))


class TestWithoutContract:

    def test_cost_required(self, processor):
        with pytest.raises(ValidationError) as exc_info:
            processor.receive_goods(_receipt())

        assert exc_info.value.field_errors[0]["field"] == "cost_per_unit"

    def test_default_currency(self, session, deterministic_clock):
        processor = ReceiptProcessor(session, deterministic_clock, default_currency="KES")

        outcome = processor.receive_goods(_receipt(cost_per_unit=Decimal("30000")))

        assert outcome.batch.currency == "KES"
        assert outcome.batch.contract_id is None


class TestIdempotency:

    def test_replay_returns_original(self, session_contract, processor, captured_logs):
        item = session_contract(quantity="1000").items[0]
        receipt = _receipt("400", contract_item_id=item.id, idempotency_key="GRN-1")

        first = processor.receive_goods(receipt)
        second = processor.receive_goods(receipt)

        assert first.created and not second.created
        assert second.batch.id == first.batch.id
        assert processor.contracts.get_item(item.id).delivered_quantity == Decimal("400")
        assert any(r["message"] == "goods_receipt_replayed" for r in captured_logs())

    def test_replay_committed_while_waiting_for_item_lock(
        self, session_contract, processor, monkeypatch
    ):
        """A same-key receipt that lands before the item lock is a replay, not an over-delivery."""
        item = session_contract(quantity="1000").items[0]
        receipt = _receipt("600", contract_item_id=item.id, idempotency_key="GRN-LOCK")
        lock_item = processor.contracts.lock_item
        competing = []

        def _lock_after_competing_receipt(contract_item_id):
            monkeypatch.setattr(processor.contracts, "lock_item", lock_item)
            competing.append(processor.receive_goods(receipt))
            return lock_item(contract_item_id)

        monkeypatch.setattr(processor.contracts, "lock_item", _lock_after_competing_receipt)

        outcome = processor.receive_goods(receipt)

        assert competing[0].created
        assert not outcome.created
        assert outcome.batch.id == competing[0].batch.id
        assert processor.contracts.get_item(item.id).delivered_quantity == Decimal("600")

    def test_replay_with_different_payload(self, processor):
        processor.receive_goods(
            _receipt("400", cost_per_unit=Decimal("10"), idempotency_key="GRN-2")
        )

        with pytest.raises(IdempotencyConflictError) as exc_info:
            processor.receive_goods(
                _receipt("401", location="WH-B", cost_per_unit=Decimal("10"), idempotency_key="GRN-2")
            )

        assert exc_info.value.mismatched == ["location", "weight"]


class TestCompensation:

    def test_failed_batch_creation_reverses_delivery(
        self, session_contract, processor, monkeypatch, captured_logs
    ):
        item = session_contract(quantity="1000").items[0]

        def _boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(processor.allocation, "register_receipt", _boom)

        with pytest.raises(RuntimeError, match="disk full"):
            processor.receive_goods(_receipt("400", contract_item_id=item.id))

        assert processor.contracts.get_item(item.id).delivered_quantity == Decimal("0")
        assert any(r["message"] == "goods_receipt_compensated" for r in captured_logs())
