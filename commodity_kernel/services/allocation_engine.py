"""
AllocationEngine -- the sole authority for batch weight and batch status.

Responsibility:
    Every quantity change to a batch goes through this class:

    * register_receipt   -- new RECEIVED batch from a goods receipt
    * approve / reject   -- quality sign-off
    * reserve_and_debit  -- take weight out of a batch (processing, transfer)
    * credit_new_batch   -- create a successor batch from debited weight
    * reverse_debit      -- put debited weight back (order cancellation)
    * consume            -- close out a drained IN_PROCESS batch
    * record_movement    -- append the audit row for a weight change

Architecture position:
    Kernel > Services.  Used by ReceiptProcessor, ProcessingService and
    TransferEngine.  Never commits.

Invariants enforced:
    - 0 <= current_weight <= received_weight on every batch.
    - Debit and status flip happen in one read-modify-write under the
      batch row lock; no caller can observe one without the other.
    - A debit that drains a batch parks it IN_PROCESS (processing) or
      ends it TRANSFERRED (transfer); status moves only along
      BATCH_WORKFLOW.
    - Credits never exceed the debit they split (assert_conservation).

Failure modes:
    - InsufficientQuantityError: current_weight < requested.
    - InvalidBatchStateError: status does not allow the operation.
    - ConservationViolationError: a credit would create weight.
    - BatchNotFoundError.
"""

from decimal import Decimal
from uuid import UUID

from commodity_kernel.domain.dtos import GoodsReceipt
from commodity_kernel.domain.lifecycles import (
    BATCH_WORKFLOW,
    DEBITABLE_BATCH_STATUSES,
    BatchStatus,
    DebitPurpose,
    MovementType,
    require_transition,
)
from commodity_kernel.domain.numbering import MOVEMENT_PREFIX
from commodity_kernel.domain.quantities import ZERO_WEIGHT
from commodity_kernel.exceptions import (
    ConservationViolationError,
    InsufficientQuantityError,
    InvalidBatchStateError,
    InvalidStateTransition,
    ValidationError,
)
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.models.movement import BatchMovement
from commodity_kernel.services.base import BaseService
from commodity_kernel.services.batch_registry import BatchRegistry
from commodity_kernel.services.sequence_service import SequenceService

logger = get_logger("services.allocation")

_DRAINED_STATUS = {
    DebitPurpose.PROCESSING: BatchStatus.IN_PROCESS,
    DebitPurpose.TRANSFER: BatchStatus.TRANSFERRED,
}


class AllocationEngine(BaseService):
    """Shared mutation surface for batches."""

    def __init__(self, session, clock=None, **kwargs):
        super().__init__(session, clock, **kwargs)
        self.registry = BatchRegistry(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def register_receipt(
        self,
        receipt: GoodsReceipt,
        *,
        cost_per_unit: Decimal,
        currency: str,
        contract_id: UUID | None = None,
    ) -> CommodityBatch:
        """Create the RECEIVED batch for a physical arrival."""
        received_date = receipt.received_date or self.clock.today()
        batch = CommodityBatch(
            batch_number=self.registry.next_batch_number(receipt.commodity_code, received_date),
            commodity_code=receipt.commodity_code,
            supplier_ref=receipt.supplier_ref,
            location=receipt.location,
            status=BatchStatus.RECEIVED,
            received_weight=receipt.weight,
            current_weight=receipt.weight,
            cost_per_unit=cost_per_unit,
            currency=currency,
            contract_id=contract_id,
            contract_item_id=receipt.contract_item_id,
            receipt_token=receipt.idempotency_key,
            grade=receipt.grade,
            crop_year=receipt.crop_year,
            quality_notes=receipt.quality_notes,
            received_date=received_date,
            created_by_id=self.actor_id,
        )
        self.registry.add(batch)
        self.registry.flush()

        logger.info(
            "batch_registered",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "weight": batch.received_weight,
                "location": batch.location,
            },
        )
        return batch

    def credit_new_batch(
        self,
        source: CommodityBatch,
        quantity: Decimal,
        *,
        location: str,
        status: BatchStatus,
        commodity_code: str | None = None,
        cost_per_unit: Decimal | None = None,
        currency: str | None = None,
        grade: str | None = None,
        processing_order_id: UUID | None = None,
    ) -> CommodityBatch:
        """
        Create a successor batch holding `quantity`, with lineage to `source`.

        Provenance (supplier, contract, crop year) is inherited from the
        source; cost and commodity are inherited unless overridden.
        """
        if quantity <= 0:
            raise ValidationError.for_field("quantity", "must be positive")
        today = self.clock.today()
        commodity_code = commodity_code or source.commodity_code
        batch = CommodityBatch(
            batch_number=self.registry.next_batch_number(commodity_code, today),
            commodity_code=commodity_code,
            supplier_ref=source.supplier_ref,
            location=location,
            status=status,
            received_weight=quantity,
            current_weight=quantity,
            cost_per_unit=source.cost_per_unit if cost_per_unit is None else cost_per_unit,
            currency=currency or source.currency,
            contract_id=source.contract_id,
            contract_item_id=source.contract_item_id,
            parent_batch_id=source.id,
            processing_order_id=processing_order_id,
            grade=grade if grade is not None else source.grade,
            crop_year=source.crop_year,
            received_date=today,
            created_by_id=self.actor_id,
        )
        self.registry.add(batch)
        self.registry.flush()

        logger.info(
            "batch_credited",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "parent_batch_id": str(source.id),
                "quantity": quantity,
                "location": location,
            },
        )
        return batch

    # ------------------------------------------------------------------
    # Quality sign-off
    # ------------------------------------------------------------------

    def approve(self, batch_id) -> CommodityBatch:
        return self._sign_off(batch_id, BatchStatus.APPROVED, "approve")

    def reject(self, batch_id, reason: str | None = None) -> CommodityBatch:
        return self._sign_off(batch_id, BatchStatus.REJECTED, "reject", reason)

    def _sign_off(
        self, batch_id, target: BatchStatus, operation: str, reason: str | None = None
    ) -> CommodityBatch:
        batch = self.registry.get_for_update(batch_id)
        try:
            require_transition(BATCH_WORKFLOW, "CommodityBatch", batch.id, batch.status, target)
        except InvalidStateTransition:
            raise InvalidBatchStateError(
                batch_id=str(batch.id),
                current_status=batch.status.value,
                operation=operation,
                allowed=(BatchStatus.RECEIVED.value,),
            ) from None
        batch.status = target
        if reason:
            batch.quality_notes = (
                f"{batch.quality_notes}\n{reason}" if batch.quality_notes else reason
            )
        batch.updated_by_id = self.actor_id
        self.registry.flush()

        logger.info(
            f"batch_{target.value.lower()}",
            extra={"batch_id": str(batch.id), "batch_number": batch.batch_number},
        )
        return batch

    # ------------------------------------------------------------------
    # Debit / credit primitives
    # ------------------------------------------------------------------

    def check_debit(self, batch: CommodityBatch, quantity: Decimal) -> None:
        """Raise if `quantity` cannot be debited from `batch` right now."""
        if batch.status not in DEBITABLE_BATCH_STATUSES:
            raise InvalidBatchStateError(
                batch_id=str(batch.id),
                current_status=batch.status.value,
                operation="be debited",
                allowed=tuple(s.value for s in DEBITABLE_BATCH_STATUSES),
            )
        if batch.current_weight < quantity:
            raise InsufficientQuantityError(
                batch_id=str(batch.id),
                available=batch.current_weight,
                requested=quantity,
            )

    def reserve_and_debit(
        self, batch_id, quantity: Decimal, purpose: DebitPurpose
    ) -> CommodityBatch:
        """
        Decrement current_weight by `quantity` under the batch row lock.

        At zero the status flips in the same flush: IN_PROCESS for a
        processing draw, TRANSFERRED for a transfer.
        """
        if quantity <= 0:
            raise ValidationError.for_field("quantity", "must be positive")
        batch = self.registry.get_for_update(batch_id)
        try:
            self.check_debit(batch, quantity)
        except (InsufficientQuantityError, InvalidBatchStateError) as exc:
            logger.warning(
                "batch_debit_rejected",
                extra={
                    "batch_id": str(batch.id),
                    "status": batch.status.value,
                    "current_weight": batch.current_weight,
                    "requested": quantity,
                    "reason": exc.code,
                },
            )
            raise

        previous_status = batch.status
        batch.current_weight = batch.current_weight - quantity
        if batch.current_weight == ZERO_WEIGHT:
            target = _DRAINED_STATUS[purpose]
            if batch.status != target:
                require_transition(
                    BATCH_WORKFLOW, "CommodityBatch", batch.id, batch.status, target
                )
                batch.status = target
        batch.updated_by_id = self.actor_id
        self.registry.flush()

        logger.info(
            "batch_debited",
            extra={
                "batch_id": str(batch.id),
                "purpose": purpose.value,
                "quantity": quantity,
                "current_weight": batch.current_weight,
                "from_status": previous_status.value,
                "to_status": batch.status.value,
            },
        )
        return batch

    def reverse_debit(self, batch_id, quantity: Decimal) -> CommodityBatch:
        """Credit `quantity` back to the batch it was debited from."""
        batch = self.registry.get_for_update(batch_id)
        if batch.is_frozen or batch.status not in DEBITABLE_BATCH_STATUSES:
            raise InvalidBatchStateError(
                batch_id=str(batch.id),
                current_status=batch.status.value,
                operation="be credited back",
                allowed=tuple(s.value for s in DEBITABLE_BATCH_STATUSES),
            )
        restored = batch.current_weight + quantity
        if restored > batch.received_weight:
            raise ConservationViolationError(
                context=f"reversal on batch {batch.id}",
                debited=batch.received_weight - batch.current_weight,
                credited=quantity,
            )
        batch.current_weight = restored
        if batch.status == BatchStatus.IN_PROCESS:
            require_transition(
                BATCH_WORKFLOW, "CommodityBatch", batch.id, batch.status, BatchStatus.APPROVED
            )
            batch.status = BatchStatus.APPROVED
        batch.updated_by_id = self.actor_id
        self.registry.flush()

        logger.info(
            "batch_debit_reversed",
            extra={
                "batch_id": str(batch.id),
                "quantity": quantity,
                "current_weight": batch.current_weight,
                "status": batch.status.value,
            },
        )
        return batch

    def consume(self, batch_id) -> CommodityBatch:
        """Close out a drained IN_PROCESS batch.  CONSUMED is final."""
        batch = self.registry.get_for_update(batch_id)
        if batch.current_weight != ZERO_WEIGHT:
            raise InvalidBatchStateError(
                batch_id=str(batch.id),
                current_status=batch.status.value,
                operation=f"be consumed with {batch.current_weight} remaining",
            )
        require_transition(
            BATCH_WORKFLOW, "CommodityBatch", batch.id, batch.status, BatchStatus.CONSUMED
        )
        batch.status = BatchStatus.CONSUMED
        batch.updated_by_id = self.actor_id
        self.registry.flush()

        logger.info("batch_consumed", extra={"batch_id": str(batch.id)})
        return batch

    @staticmethod
    def assert_conservation(
        context: str, debited: Decimal, credited: Decimal, *, exact: bool
    ) -> None:
        """A split may lose weight only where loss is recorded; it never gains."""
        if credited > debited or (exact and credited != debited):
            logger.error(
                "conservation_violation",
                extra={"context": context, "debited": debited, "credited": credited},
            )
            raise ConservationViolationError(context, debited, credited)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def record_movement(
        self,
        movement_type: MovementType,
        quantity: Decimal,
        *,
        source: CommodityBatch | None = None,
        destination: CommodityBatch | None = None,
        source_location: str | None = None,
        processing_order_id: UUID | None = None,
    ) -> BatchMovement:
        moved_at = self.clock.now()
        movement = BatchMovement(
            reference_number=self._sequences.next_document_number(
                MOVEMENT_PREFIX, moved_at.date()
            ),
            movement_type=movement_type,
            source_batch_id=source.id if source is not None else None,
            destination_batch_id=destination.id if destination is not None else None,
            source_location=source_location or (source.location if source is not None else None),
            destination_location=destination.location if destination is not None else None,
            quantity=quantity,
            processing_order_id=processing_order_id,
            moved_at=moved_at,
            created_by_id=self.actor_id,
        )
        self.session.add(movement)
        self.registry.flush()

        logger.debug(
            "movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "reference_number": movement.reference_number,
                "movement_type": movement_type.value,
                "quantity": quantity,
            },
        )
        return movement
