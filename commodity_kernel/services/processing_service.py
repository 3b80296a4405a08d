"""
ProcessingService -- the processing order state machine.

Responsibility:
    PLANNED -> IN_PROGRESS -> COMPLETED, or PLANNED/IN_PROGRESS -> CANCELLED.

    create_order    declares inputs; nothing is debited yet.
    start_order     debits every input through AllocationEngine.
    complete_order  credits one new batch per declared output.
    cancel_order    credits every debited input back to its source.

Architecture position:
    Kernel > Services.  All weight changes go through AllocationEngine.

Invariants enforced:
    - Start is all-or-nothing: every input batch is locked (ascending id
      order) and checked before the first debit is applied.  Any failure
      aborts the unit of work, so no debit is left applied.
    - Total output weight never exceeds total input weight; the
      difference is stored as process_loss.
    - Cancellation never destroys inventory: every debited quantity is
      credited back, with a PROCESSING_REVERSAL movement.

Failure modes:
    - ValidationError: no inputs, no outputs, output exceeds input,
      output lineage parent not among the inputs, mixed input currencies.
    - InvalidStateTransition: operation not legal for the order status.
    - InsufficientQuantityError / InvalidBatchStateError on start.
    - ProcessingOrderNotFoundError / BatchNotFoundError.
"""

from collections import OrderedDict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from commodity_kernel.db.repository import Repository
from commodity_kernel.domain.dtos import ProcessingInputSpec, ProcessingOutputSpec
from commodity_kernel.domain.lifecycles import (
    PROCESSING_ORDER_WORKFLOW,
    BatchStatus,
    DebitPurpose,
    MovementType,
    ProcessingOrderStatus,
    ProcessingType,
    require_transition,
)
from commodity_kernel.domain.numbering import PROCESSING_ORDER_PREFIX
from commodity_kernel.domain.quantities import ZERO_WEIGHT, round_money
from commodity_kernel.exceptions import (
    InsufficientQuantityError,
    InvalidBatchStateError,
    ProcessingOrderNotFoundError,
    ValidationError,
)
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.models.processing import (
    ProcessingInput,
    ProcessingOrder,
    ProcessingOutput,
)
from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.base import BaseService
from commodity_kernel.services.sequence_service import SequenceService

logger = get_logger("services.processing")

_YIELD_QUANTUM = Decimal("0.0001")


class ProcessingOrderRepository(Repository[ProcessingOrder]):
    model = ProcessingOrder
    not_found = ProcessingOrderNotFoundError

    def holders_of(self, batch_id: UUID, *, excluding: UUID) -> list[ProcessingOrder]:
        """IN_PROGRESS orders other than `excluding` that drew from `batch_id`."""
        return list(
            self.session.execute(
                select(ProcessingOrder)
                .join(ProcessingInput, ProcessingInput.order_id == ProcessingOrder.id)
                .where(
                    ProcessingInput.batch_id == batch_id,
                    ProcessingOrder.status == ProcessingOrderStatus.IN_PROGRESS,
                    ProcessingOrder.id != excluding,
                )
            ).scalars().unique()
        )


def _quantities_by_batch(order: ProcessingOrder) -> "OrderedDict[UUID, Decimal]":
    """Sum declared quantities per batch, keyed in ascending id order."""
    totals: dict[UUID, Decimal] = {}
    for line in order.inputs:
        totals[line.batch_id] = totals.get(line.batch_id, ZERO_WEIGHT) + line.quantity
    return OrderedDict(sorted(totals.items(), key=lambda kv: str(kv[0])))


class ProcessingService(BaseService):
    """Drives processing orders through their lifecycle."""

    def __init__(self, session, clock=None, **kwargs):
        super().__init__(session, clock, **kwargs)
        self.orders = ProcessingOrderRepository(session)
        self.allocation = AllocationEngine(session, clock, **kwargs)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # PLANNED
    # ------------------------------------------------------------------

    def create_order(
        self,
        processing_type: ProcessingType,
        inputs: Sequence[ProcessingInputSpec],
        planned_date: date | None = None,
        notes: str | None = None,
    ) -> ProcessingOrder:
        if not inputs:
            raise ValidationError.for_field("inputs", "at least one input is required")
        # Referenced batches must exist; weight is only checked on start.
        for spec in inputs:
            self.allocation.registry.get(spec.batch_id)

        today = self.clock.today()
        order = ProcessingOrder(
            order_number=self._sequences.next_document_number(PROCESSING_ORDER_PREFIX, today),
            processing_type=processing_type,
            status=ProcessingOrderStatus.PLANNED,
            total_input_weight=sum((s.quantity for s in inputs), ZERO_WEIGHT),
            planned_date=planned_date,
            notes=notes,
            created_by_id=self.actor_id,
        )
        for line_number, spec in enumerate(inputs, start=1):
            order.inputs.append(
                ProcessingInput(
                    line_number=line_number,
                    batch_id=spec.batch_id,
                    quantity=spec.quantity,
                )
            )
        self.orders.add(order)
        self.orders.flush()

        logger.info(
            "processing_order_created",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "processing_type": processing_type.value,
                "input_count": len(inputs),
                "total_input_weight": order.total_input_weight,
            },
        )
        return order

    # ------------------------------------------------------------------
    # PLANNED -> IN_PROGRESS
    # ------------------------------------------------------------------

    def start_order(self, order_id) -> ProcessingOrder:
        order = self.orders.get_for_update(order_id)
        require_transition(
            PROCESSING_ORDER_WORKFLOW, "ProcessingOrder", order.id,
            order.status, ProcessingOrderStatus.IN_PROGRESS,
        )

        wanted = _quantities_by_batch(order)
        batches = self.allocation.registry.lock_many(wanted)

        # Pre-validate every input before the first debit.
        for batch_id, quantity in wanted.items():
            batch = batches[batch_id]
            try:
                self.allocation.check_debit(batch, quantity)
            except (InsufficientQuantityError, InvalidBatchStateError) as exc:
                logger.warning(
                    "processing_order_start_rejected",
                    extra={
                        "order_id": str(order.id),
                        "batch_id": str(batch_id),
                        "requested": quantity,
                        "available": batch.current_weight,
                        "reason": exc.code,
                    },
                )
                raise

        for batch_id, quantity in wanted.items():
            batch = self.allocation.reserve_and_debit(
                batch_id, quantity, DebitPurpose.PROCESSING
            )
            self.allocation.record_movement(
                MovementType.PROCESSING_IN,
                quantity,
                source=batch,
                processing_order_id=order.id,
            )

        for line in order.inputs:
            batch = batches[line.batch_id]
            line.cost_allocated = round_money(line.quantity * batch.cost_per_unit)
            line.currency = batch.currency

        order.status = ProcessingOrderStatus.IN_PROGRESS
        order.started_at = self.clock.now()
        order.updated_by_id = self.actor_id
        self.orders.flush()

        logger.info(
            "processing_order_started",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "total_input_weight": order.total_input_weight,
            },
        )
        return order

    # ------------------------------------------------------------------
    # IN_PROGRESS -> COMPLETED
    # ------------------------------------------------------------------

    def complete_order(
        self, order_id, outputs: Sequence[ProcessingOutputSpec]
    ) -> tuple[ProcessingOrder, list[CommodityBatch]]:
        order = self.orders.get_for_update(order_id)
        require_transition(
            PROCESSING_ORDER_WORKFLOW, "ProcessingOrder", order.id,
            order.status, ProcessingOrderStatus.COMPLETED,
        )
        if not outputs:
            raise ValidationError.for_field("outputs", "at least one output is required")

        total_output = sum((o.weight for o in outputs), ZERO_WEIGHT)
        if total_output > order.total_input_weight:
            raise ValidationError.for_field(
                "outputs",
                f"total output {total_output} exceeds total input {order.total_input_weight}",
            )

        input_batch_ids = {line.batch_id for line in order.inputs}
        for i, spec in enumerate(outputs):
            if spec.source_batch_id is not None and spec.source_batch_id not in input_batch_ids:
                raise ValidationError.for_field(
                    f"outputs[{i}].source_batch_id", "is not an input of this order"
                )

        currencies = {line.currency for line in order.inputs}
        if len(currencies) > 1:
            raise ValidationError.for_field(
                "inputs", f"inputs are priced in several currencies: {sorted(currencies)}"
            )
        currency = currencies.pop()

        total_cost = sum((line.cost_allocated for line in order.inputs), Decimal("0"))
        cost_per_unit = round_money(total_cost / total_output)
        default_parent = order.inputs[0].batch_id

        AllocationEngine.assert_conservation(
            f"processing order {order.order_number}",
            order.total_input_weight,
            total_output,
            exact=False,
        )

        created: list[CommodityBatch] = []
        for line_number, spec in enumerate(outputs, start=1):
            parent = self.allocation.registry.get(spec.source_batch_id or default_parent)
            batch = self.allocation.credit_new_batch(
                parent,
                spec.weight,
                location=spec.location or parent.location,
                status=BatchStatus.APPROVED,
                commodity_code=spec.commodity_code,
                cost_per_unit=cost_per_unit,
                currency=currency,
                grade=spec.grade,
                processing_order_id=order.id,
            )
            self.allocation.record_movement(
                MovementType.PROCESSING_OUT,
                spec.weight,
                destination=batch,
                source_location=parent.location,
                processing_order_id=order.id,
            )
            order.outputs.append(
                ProcessingOutput(
                    line_number=line_number,
                    batch_id=batch.id,
                    weight=spec.weight,
                    yield_percentage=(
                        spec.weight * 100 / order.total_input_weight
                    ).quantize(_YIELD_QUANTUM),
                    grade=batch.grade,
                )
            )
            created.append(batch)

        for batch_id in _quantities_by_batch(order):
            batch = self.allocation.registry.get(batch_id)
            if batch.status == BatchStatus.IN_PROCESS and batch.current_weight == ZERO_WEIGHT:
                if not self.orders.holders_of(batch_id, excluding=order.id):
                    self.allocation.consume(batch_id)

        order.total_output_weight = total_output
        order.process_loss = order.total_input_weight - total_output
        order.status = ProcessingOrderStatus.COMPLETED
        order.completed_at = self.clock.now()
        order.updated_by_id = self.actor_id
        self.orders.flush()

        logger.info(
            "processing_order_completed",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "total_input_weight": order.total_input_weight,
                "total_output_weight": total_output,
                "process_loss": order.process_loss,
                "output_count": len(created),
            },
        )
        return order, created

    # ------------------------------------------------------------------
    # -> CANCELLED
    # ------------------------------------------------------------------

    def cancel_order(self, order_id, reason: str | None = None) -> ProcessingOrder:
        order = self.orders.get_for_update(order_id)
        previous = order.status
        require_transition(
            PROCESSING_ORDER_WORKFLOW, "ProcessingOrder", order.id,
            previous, ProcessingOrderStatus.CANCELLED,
        )

        if previous == ProcessingOrderStatus.IN_PROGRESS:
            wanted = _quantities_by_batch(order)
            batches = self.allocation.registry.lock_many(wanted)
            for batch_id, quantity in wanted.items():
                source = batches[batch_id]
                if source.is_frozen:
                    # The remainder was transferred away while this order
                    # held its share; the share comes back as a new lot.
                    restored = self.allocation.credit_new_batch(
                        source,
                        quantity,
                        location=source.location,
                        status=BatchStatus.APPROVED,
                        processing_order_id=order.id,
                    )
                else:
                    restored = self.allocation.reverse_debit(batch_id, quantity)
                self.allocation.record_movement(
                    MovementType.PROCESSING_REVERSAL,
                    quantity,
                    source=source if restored is not source else None,
                    destination=restored,
                    source_location=source.location,
                    processing_order_id=order.id,
                )

        order.status = ProcessingOrderStatus.CANCELLED
        order.cancelled_at = self.clock.now()
        if reason:
            order.notes = f"{order.notes}\n{reason}" if order.notes else reason
        order.updated_by_id = self.actor_id
        self.orders.flush()

        logger.info(
            "processing_order_cancelled",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "from_status": previous.value,
                "reversed": previous == ProcessingOrderStatus.IN_PROGRESS,
            },
        )
        return order

    def get_order(self, order_id) -> ProcessingOrder:
        return self.orders.get(order_id)
