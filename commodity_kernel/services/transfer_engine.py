"""
TransferEngine -- moves weight from one batch to a new batch elsewhere.

Responsibility:
    transfer() debits the source, credits a destination batch at the new
    location with lineage to the source, and appends a TRANSFER movement.

Architecture position:
    Kernel > Services.  Weight changes go through AllocationEngine.

Invariants enforced:
    - Conservation is exact: the destination receives exactly the debited
      quantity.
    - The destination inherits the source's quality status; transfers do
      not re-open quality sign-off.
    - A full transfer leaves the source TRANSFERRED at zero weight; it is
      kept for lineage queries and never changes again.

Failure modes:
    - ValidationError: destination equals the source location.
    - InsufficientQuantityError / InvalidBatchStateError from the debit.
    - BatchNotFoundError.
"""

from decimal import Decimal

from commodity_kernel.domain.dtos import positive_weight
from commodity_kernel.domain.lifecycles import DebitPurpose, MovementType
from commodity_kernel.exceptions import ValidationError
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.models.movement import BatchMovement
from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.base import BaseService

logger = get_logger("services.transfer")


class TransferEngine(BaseService):

    def __init__(self, session, clock=None, **kwargs):
        super().__init__(session, clock, **kwargs)
        self.allocation = AllocationEngine(session, clock, **kwargs)

    def transfer(
        self, batch_id, destination_location: str, quantity: Decimal
    ) -> tuple[BatchMovement, CommodityBatch, CommodityBatch]:
        if not isinstance(destination_location, str) or not destination_location.strip():
            raise ValidationError.for_field("destination_location", "is required")
        destination_location = destination_location.strip()
        quantity = positive_weight("quantity", quantity)

        source = self.allocation.registry.get_for_update(batch_id)
        if source.location == destination_location:
            raise ValidationError.for_field(
                "destination_location", f"batch is already at {destination_location}"
            )
        quality_status = source.status

        source = self.allocation.reserve_and_debit(source.id, quantity, DebitPurpose.TRANSFER)
        destination = self.allocation.credit_new_batch(
            source,
            quantity,
            location=destination_location,
            status=quality_status,
        )
        AllocationEngine.assert_conservation(
            f"transfer from {source.batch_number}",
            quantity,
            destination.received_weight,
            exact=True,
        )
        movement = self.allocation.record_movement(
            MovementType.TRANSFER,
            quantity,
            source=source,
            destination=destination,
        )

        logger.info(
            "transfer_completed",
            extra={
                "batch_id": str(source.id),
                "destination_batch_id": str(destination.id),
                "reference_number": movement.reference_number,
                "from_location": source.location,
                "to_location": destination_location,
                "quantity": quantity,
                "source_status": source.status.value,
            },
        )
        return movement, source, destination
