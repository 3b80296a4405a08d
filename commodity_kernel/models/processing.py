"""
Module: commodity_kernel.models.processing
Responsibility: ORM persistence for processing orders (cleaning, milling,
    blending, ...) with their input allocations and output lines.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycles.py only.

Invariants enforced:
    - Input quantities are positive; an order has at least one input
      (service layer).
    - Output lines exist only once the order is COMPLETED.
    - total_output_weight <= total_input_weight; process_loss is the
      explicit, recorded difference.
    - ProcessingOrder carries a version_id_col.

Failure modes:
    - IntegrityError on duplicate order_number.
    - StaleDataError on concurrent modification of the same order.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commodity_kernel.db.base import Base, TrackedBase, UUIDString
from commodity_kernel.db.types import Currency, DecimalAmount, LongText, MoneyAmount, WeightAmount
from commodity_kernel.domain.lifecycles import ProcessingOrderStatus, ProcessingType


class ProcessingOrder(TrackedBase):
    """Transformation of input batches into output batches."""

    __tablename__ = "processing_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_processing_order_number"),
        Index("idx_processing_order_status", "status"),
        CheckConstraint("total_input_weight > 0", name="ck_processing_input_positive"),
        CheckConstraint(
            "total_output_weight IS NULL OR total_output_weight <= total_input_weight",
            name="ck_processing_output_within_input",
        ),
    )

    order_number: Mapped[str] = mapped_column(String(30), nullable=False)

    processing_type: Mapped[ProcessingType] = mapped_column(
        SAEnum(ProcessingType, native_enum=False, length=20),
        nullable=False,
    )

    status: Mapped[ProcessingOrderStatus] = mapped_column(
        SAEnum(ProcessingOrderStatus, native_enum=False, length=20),
        nullable=False,
        default=ProcessingOrderStatus.PLANNED,
    )

    total_input_weight: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)
    total_output_weight: Mapped[Decimal | None] = mapped_column(WeightAmount(), nullable=True)
    process_loss: Mapped[Decimal | None] = mapped_column(WeightAmount(), nullable=True)

    planned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[str | None] = mapped_column(LongText, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    inputs: Mapped[list["ProcessingInput"]] = relationship(
        "ProcessingInput",
        order_by="ProcessingInput.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    outputs: Mapped[list["ProcessingOutput"]] = relationship(
        "ProcessingOutput",
        order_by="ProcessingOutput.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from commodity_kernel.domain.dtos import (
            ProcessingInputInfo,
            ProcessingOrderInfo,
            ProcessingOutputInfo,
        )

        return ProcessingOrderInfo(
            id=self.id,
            order_number=self.order_number,
            processing_type=self.processing_type,
            status=self.status,
            inputs=tuple(
                ProcessingInputInfo(
                    line_number=i.line_number,
                    batch_id=i.batch_id,
                    quantity=i.quantity,
                    cost_allocated=i.cost_allocated,
                )
                for i in self.inputs
            ),
            outputs=tuple(
                ProcessingOutputInfo(
                    line_number=o.line_number,
                    batch_id=o.batch_id,
                    weight=o.weight,
                    yield_percentage=o.yield_percentage,
                    grade=o.grade,
                )
                for o in self.outputs
            ),
            total_input_weight=self.total_input_weight,
            total_output_weight=self.total_output_weight,
            process_loss=self.process_loss,
            planned_date=self.planned_date,
            started_at=self.started_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            notes=self.notes,
            version=self.version,
        )


class ProcessingInput(Base):
    """A declared draw from one batch.  cost_allocated is fixed at start."""

    __tablename__ = "processing_order_inputs"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_processing_input_line"),
        Index("idx_processing_input_batch", "batch_id"),
        CheckConstraint("quantity > 0", name="ck_processing_input_quantity_positive"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("processing_orders.id"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commodity_batches.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)
    cost_allocated: Mapped[Decimal | None] = mapped_column(MoneyAmount(), nullable=True)
    currency: Mapped[str | None] = mapped_column(Currency, nullable=True)


class ProcessingOutput(Base):
    """An output batch produced when the order completed."""

    __tablename__ = "processing_order_outputs"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_processing_output_line"),
        CheckConstraint("weight > 0", name="ck_processing_output_weight_positive"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("processing_orders.id"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commodity_batches.id"),
        nullable=False,
    )
    weight: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)
    yield_percentage: Mapped[Decimal] = mapped_column(DecimalAmount(4), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
