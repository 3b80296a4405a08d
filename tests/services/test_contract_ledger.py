"""
ContractLedger: contract creation, status edges, and delivered quantity.

The delivered quantity of an item may never pass its contracted quantity;
record_delivery is the single place that check lives.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from commodity_kernel.domain.dtos import ContractItemSpec
from commodity_kernel.domain.lifecycles import ContractStatus
from commodity_kernel.exceptions import (
    ContractItemNotFoundError,
    ContractNotFoundError,
    InvalidStateTransition,
    OverDeliveryError,
    ValidationError,
)


def _items(*lines):
    return [ContractItemSpec(code, Decimal(qty), Decimal(price)) for code, qty, price in lines]


class TestCreateContract:

    def test_created_in_draft_with_zero_delivered(self, contract_ledger):
        contract = contract_ledger.create_contract(
            "SUP-001",
            _items(("MAIZE", "600", "500"), ("SORGHUM", "400", "450")),
            "usd",
        )

        assert contract.status == ContractStatus.DRAFT
        assert contract.currency == "USD"
        assert contract.contract_number.startswith("PC-20240301-")
        assert [i.line_number for i in contract.items] == [1, 2]
        assert all(i.delivered_quantity == Decimal("0") for i in contract.items)

    def test_contract_numbers_are_sequential(self, contract_ledger):
        first = contract_ledger.create_contract("SUP-001", _items(("MAIZE", "1", "1")), "USD")
        second = contract_ledger.create_contract("SUP-001", _items(("MAIZE", "1", "1")), "USD")

        assert first.contract_number == "PC-20240301-0001"
        assert second.contract_number == "PC-20240301-0002"

    def test_errors_are_aggregated(self, contract_ledger):
        with pytest.raises(ValidationError) as exc_info:
            contract_ledger.create_contract(
                " ",
                [],
                "DOLLARS",
                delivery_start=date(2024, 5, 1),
                delivery_end=date(2024, 4, 1),
            )

        fields = {e["field"] for e in exc_info.value.field_errors}
        assert fields == {"supplier_ref", "items", "currency", "delivery_end"}

    def test_logs_creation(self, contract_ledger, captured_logs):
        contract_ledger.create_contract("SUP-001", _items(("MAIZE", "10", "1")), "USD")

        records = [r for r in captured_logs() if r["message"] == "contract_created"]
        assert len(records) == 1
        assert records[0]["item_count"] == 1


class TestTransitionStatus:

    def test_full_happy_path(self, contract_ledger):
        contract = contract_ledger.create_contract("SUP-001", _items(("MAIZE", "10", "1")), "USD")
        contract_ledger.transition_status(contract.id, ContractStatus.SUBMITTED)
        contract_ledger.transition_status(contract.id, ContractStatus.ACTIVE)
        contract = contract_ledger.transition_status(contract.id, ContractStatus.COMPLETED)

        assert contract.status == ContractStatus.COMPLETED

    def test_cannot_skip_submission(self, contract_ledger):
        contract = contract_ledger.create_contract("SUP-001", _items(("MAIZE", "10", "1")), "USD")

        with pytest.raises(InvalidStateTransition) as exc_info:
            contract_ledger.transition_status(contract.id, ContractStatus.ACTIVE)

        assert exc_info.value.current_status == "DRAFT"
        assert exc_info.value.target_status == "ACTIVE"

    def test_active_contract_cannot_be_cancelled(self, session_contract, contract_ledger):
        contract = session_contract()

        with pytest.raises(InvalidStateTransition):
            contract_ledger.transition_status(contract.id, ContractStatus.CANCELLED)

    def test_unknown_contract(self, contract_ledger):
        with pytest.raises(ContractNotFoundError):
            contract_ledger.transition_status(uuid4(), ContractStatus.SUBMITTED)


class TestRecordDelivery:

    def test_accumulates(self, session_contract, contract_ledger):
        item = session_contract(quantity="1000").items[0]

        contract_ledger.record_delivery(item.id, Decimal("400"))
        item = contract_ledger.record_delivery(item.id, Decimal("600"))

        assert item.delivered_quantity == Decimal("1000")

    def test_over_delivery_rejected_and_unchanged(self, session_contract, contract_ledger):
        item = session_contract(quantity="1000").items[0]
        contract_ledger.record_delivery(item.id, Decimal("400"))

        with pytest.raises(OverDeliveryError) as exc_info:
            contract_ledger.record_delivery(item.id, Decimal("700"))

        err = exc_info.value
        assert err.code == "OVER_DELIVERY"
        assert err.contracted == Decimal("1000")
        assert err.delivered == Decimal("400")
        assert err.requested == Decimal("700")
        assert contract_ledger.get_item(item.id).delivered_quantity == Decimal("400")

    def test_exact_remaining_accepted(self, session_contract, contract_ledger):
        item = session_contract(quantity="1000").items[0]
        contract_ledger.record_delivery(item.id, Decimal("999.999"))

        item = contract_ledger.record_delivery(item.id, Decimal("0.001"))

        assert item.delivered_quantity == item.contracted_quantity

    def test_non_positive_quantity(self, session_contract, contract_ledger):
        item = session_contract().items[0]

        with pytest.raises(ValidationError):
            contract_ledger.record_delivery(item.id, Decimal("0"))

    def test_unknown_item(self, contract_ledger):
        with pytest.raises(ContractItemNotFoundError):
            contract_ledger.record_delivery(uuid4(), Decimal("1"))


class TestReverseDelivery:

    def test_reverses(self, session_contract, contract_ledger):
        item = session_contract().items[0]
        contract_ledger.record_delivery(item.id, Decimal("300"))

        item = contract_ledger.reverse_delivery(item.id, Decimal("300"))

        assert item.delivered_quantity == Decimal("0")

    def test_cannot_reverse_more_than_delivered(self, session_contract, contract_ledger):
        item = session_contract().items[0]
        contract_ledger.record_delivery(item.id, Decimal("100"))

        with pytest.raises(ValidationError):
            contract_ledger.reverse_delivery(item.id, Decimal("100.001"))
