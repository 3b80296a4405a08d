"""
Property-based tests for the quantity invariants.

Every example runs inside the test's single session transaction; nothing
is committed, so examples only share sequence counters.
"""

from decimal import ROUND_FLOOR, Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from commodity_kernel.domain.dtos import (
    GoodsReceipt,
    ProcessingInputSpec,
    ProcessingOutputSpec,
)
from commodity_kernel.domain.lifecycles import BatchStatus, DebitPurpose, ProcessingType
from commodity_kernel.exceptions import (
    ConservationViolationError,
    InsufficientQuantityError,
    InvalidBatchStateError,
    OverDeliveryError,
)
from commodity_kernel.selectors import BatchSelector
from commodity_kernel.services.processing_service import ProcessingService
from commodity_kernel.services.receipt_processor import ReceiptProcessor
from commodity_kernel.services.transfer_engine import TransferEngine

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

weights = st.decimals(
    min_value=Decimal("0.001"),
    max_value=Decimal("500"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)

LOCATIONS = ["WH-A", "WH-B", "WH-C", "WH-D"]


class TestContractDeliveryProperty:

    @given(quantities=st.lists(weights, min_size=1, max_size=12))
    @FUZZ_SETTINGS
    def test_delivered_never_exceeds_contracted(
        self, quantities, session_contract, contract_ledger
    ):
        item = session_contract(quantity="1000").items[0]
        expected = Decimal("0")

        for qty in quantities:
            try:
                contract_ledger.record_delivery(item.id, qty)
                expected += qty
            except OverDeliveryError:
                assert expected + qty > Decimal("1000")

        delivered = contract_ledger.get_item(item.id).delivered_quantity
        assert delivered == expected
        assert Decimal("0") <= delivered <= Decimal("1000")


class TestBatchWeightProperty:

    @given(
        operations=st.lists(
            st.tuples(st.sampled_from(["debit", "reverse"]), weights), min_size=1, max_size=15
        )
    )
    @FUZZ_SETTINGS
    def test_current_weight_stays_in_bounds(self, operations, session_batch, allocation):
        batch = session_batch("300")

        for op, qty in operations:
            try:
                if op == "debit":
                    allocation.reserve_and_debit(batch.id, qty, DebitPurpose.PROCESSING)
                else:
                    allocation.reverse_debit(batch.id, qty)
            except (InsufficientQuantityError, InvalidBatchStateError, ConservationViolationError):
                pass

            assert Decimal("0") <= batch.current_weight <= batch.received_weight
            if batch.current_weight == 0:
                assert batch.status == BatchStatus.IN_PROCESS
            else:
                assert batch.status == BatchStatus.APPROVED


class TestTransferConservationProperty:

    @given(
        moves=st.lists(
            st.tuples(st.integers(min_value=0, max_value=20), st.sampled_from(LOCATIONS), weights),
            min_size=1,
            max_size=10,
        )
    )
    @FUZZ_SETTINGS
    def test_lineage_total_equals_received(
        self, moves, session, session_batch, deterministic_clock
    ):
        root = session_batch("1000", location="WH-A")
        engine = TransferEngine(session, deterministic_clock)
        lineage = [root]

        for pick, location, qty in moves:
            source = lineage[pick % len(lineage)]
            if source.location == location or source.current_weight < qty:
                continue
            _, _, destination = engine.transfer(source.id, location, qty)
            lineage.append(destination)

        assert BatchSelector(session).transfer_lineage_total(root.id) == Decimal("1000")
        assert sum((b.current_weight for b in lineage), Decimal("0")) == Decimal("1000")


class TestProcessingLossProperty:

    @given(
        drawn=weights,
        output_shares=st.lists(st.integers(min_value=1, max_value=100), min_size=1, max_size=4),
    )
    @FUZZ_SETTINGS
    def test_output_plus_loss_equals_input(
        self, drawn, output_shares, session, session_batch, deterministic_clock
    ):
        batch = session_batch("500")
        service = ProcessingService(session, deterministic_clock)
        order = service.create_order(ProcessingType.CLEANING, [ProcessingInputSpec(batch.id, drawn)])
        service.start_order(order.id)

        # Outputs take whole-percent shares of 90% of the input, floored to the kilogram.
        budget = drawn * Decimal("0.9")
        total_share = sum(output_shares)
        outputs = [
            (budget * share / total_share).quantize(Decimal("0.001"), rounding=ROUND_FLOOR)
            for share in output_shares
        ]
        outputs = [w for w in outputs if w > 0] or [drawn]

        order, created = service.complete_order(
            order.id, [ProcessingOutputSpec(w) for w in outputs]
        )

        assert order.total_output_weight + order.process_loss == order.total_input_weight
        assert order.process_loss >= 0
        assert sum((b.received_weight for b in created), Decimal("0")) == order.total_output_weight


class TestIdempotencyProperty:

    @given(weight=weights, replays=st.integers(min_value=1, max_value=4))
    @FUZZ_SETTINGS
    def test_replays_create_one_batch(
        self, weight, replays, session, session_contract, deterministic_clock
    ):
        item = session_contract(quantity="1000").items[0]
        processor = ReceiptProcessor(session, deterministic_clock)
        key = f"GRN-{item.id}"
        receipt = GoodsReceipt(
            "MAIZE", "SUP-001", "WH-A", weight, contract_item_id=item.id, idempotency_key=key
        )

        first = processor.receive_goods(receipt)
        again = [processor.receive_goods(receipt) for _ in range(replays)]

        assert first.created
        assert all(not o.created and o.batch.id == first.batch.id for o in again)
        assert processor.contracts.get_item(item.id).delivered_quantity == weight


@pytest.mark.parametrize("weight", ["0.001", "999999.999"])
def test_extreme_weights_round_trip(weight, session_batch, session):
    batch = session_batch(weight)
    session.expire(batch)

    assert batch.current_weight == Decimal(weight)
