"""
Module: commodity_kernel.models.movement
Responsibility: Append-only audit record of every quantity movement: transfers
    between locations, draws into processing, processing outputs and
    cancellation reversals.
Architecture position: Kernel > Models.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - quantity > 0; at least one of source/destination batch is set.

Audit relevance:
    Replaying movements per batch reconstructs every change to its
    current_weight after receipt.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from commodity_kernel.db.base import TrackedBase, UUIDString
from commodity_kernel.db.types import ShortCode, WeightAmount
from commodity_kernel.domain.lifecycles import MovementType


class BatchMovement(TrackedBase):
    """Immutable record of quantity leaving or entering a batch."""

    __tablename__ = "batch_movements"

    __table_args__ = (
        UniqueConstraint("reference_number", name="uq_batch_movement_reference"),
        Index("idx_batch_movement_source", "source_batch_id"),
        Index("idx_batch_movement_destination", "destination_batch_id"),
        Index("idx_batch_movement_order", "processing_order_id"),
        CheckConstraint("quantity > 0", name="ck_batch_movement_quantity_positive"),
        CheckConstraint(
            "source_batch_id IS NOT NULL OR destination_batch_id IS NOT NULL",
            name="ck_batch_movement_has_batch",
        ),
    )

    reference_number: Mapped[str] = mapped_column(String(30), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(
        SAEnum(MovementType, native_enum=False, length=30),
        nullable=False,
    )

    source_batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("commodity_batches.id"),
        nullable=True,
    )
    destination_batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("commodity_batches.id"),
        nullable=True,
    )

    source_location: Mapped[str | None] = mapped_column(ShortCode, nullable=True)
    destination_location: Mapped[str | None] = mapped_column(ShortCode, nullable=True)

    quantity: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)

    processing_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("processing_orders.id"),
        nullable=True,
    )

    moved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self):
        from commodity_kernel.domain.dtos import MovementInfo

        return MovementInfo(
            id=self.id,
            reference_number=self.reference_number,
            movement_type=self.movement_type,
            source_batch_id=self.source_batch_id,
            destination_batch_id=self.destination_batch_id,
            source_location=self.source_location,
            destination_location=self.destination_location,
            quantity=self.quantity,
            processing_order_id=self.processing_order_id,
            moved_at=self.moved_at,
        )
