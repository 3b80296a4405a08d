"""
Module: commodity_kernel.models.batch
Responsibility: ORM persistence for commodity batches, the canonical record
    of every physically distinct lot of inventory.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycles.py only.

Invariants enforced:
    - received_weight > 0 and never changes after INSERT (db/immutability.py).
    - 0 <= current_weight <= received_weight (CHECK constraints).
    - batch_number is unique; receipt_token is unique when present, so one
      idempotency token can produce at most one batch.
    - CONSUMED and fully TRANSFERRED batches are frozen (db/immutability.py).
    - Only AllocationEngine writes current_weight and status.

Failure modes:
    - IntegrityError on duplicate batch_number or receipt_token.
    - StaleDataError on concurrent modification (version_id_col).
    - ImmutabilityViolationError on any change to a frozen batch.

Audit relevance:
    parent_batch_id and processing_order_id form the lineage graph; contract
    and contract item references form the provenance to the original
    purchase.  Batches are never deleted.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from commodity_kernel.db.base import TrackedBase, UUIDString
from commodity_kernel.db.types import Currency, LongText, MoneyAmount, ShortCode, WeightAmount
from commodity_kernel.domain.lifecycles import BatchStatus, is_frozen_batch


class CommodityBatch(TrackedBase):
    """A traceable lot of commodity inventory at one location."""

    __tablename__ = "commodity_batches"

    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_commodity_batch_number"),
        UniqueConstraint("receipt_token", name="uq_commodity_batch_receipt_token"),
        Index("idx_commodity_batch_location", "location", "commodity_code"),
        Index("idx_commodity_batch_status", "status"),
        Index("idx_commodity_batch_parent", "parent_batch_id"),
        Index("idx_commodity_batch_contract_item", "contract_item_id"),
        CheckConstraint("received_weight > 0", name="ck_batch_received_positive"),
        CheckConstraint("current_weight >= 0", name="ck_batch_current_non_negative"),
        CheckConstraint(
            "current_weight <= received_weight",
            name="ck_batch_current_within_received",
        ),
        CheckConstraint("cost_per_unit >= 0", name="ck_batch_cost_non_negative"),
    )

    batch_number: Mapped[str] = mapped_column(String(40), nullable=False)

    commodity_code: Mapped[str] = mapped_column(ShortCode, nullable=False)

    supplier_ref: Mapped[str | None] = mapped_column(ShortCode, nullable=True)

    location: Mapped[str] = mapped_column(ShortCode, nullable=False)

    status: Mapped[BatchStatus] = mapped_column(
        SAEnum(BatchStatus, native_enum=False, length=20),
        nullable=False,
        default=BatchStatus.RECEIVED,
    )

    received_weight: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)

    current_weight: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)

    cost_per_unit: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    currency: Mapped[str] = mapped_column(Currency, nullable=False)

    # Provenance
    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_contracts.id"),
        nullable=True,
    )
    contract_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_contract_items.id"),
        nullable=True,
    )

    # Lineage
    parent_batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("commodity_batches.id"),
        nullable=True,
    )
    processing_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("processing_orders.id"),
        nullable=True,
    )

    receipt_token: Mapped[str | None] = mapped_column(String(100), nullable=True)

    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    crop_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_notes: Mapped[str | None] = mapped_column(LongText, nullable=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_frozen(self) -> bool:
        return is_frozen_batch(self.status, self.current_weight)

    def to_dto(self):
        from commodity_kernel.domain.dtos import BatchInfo

        return BatchInfo(
            id=self.id,
            batch_number=self.batch_number,
            commodity_code=self.commodity_code,
            supplier_ref=self.supplier_ref,
            location=self.location,
            status=self.status,
            received_weight=self.received_weight,
            current_weight=self.current_weight,
            cost_per_unit=self.cost_per_unit,
            currency=self.currency,
            contract_id=self.contract_id,
            contract_item_id=self.contract_item_id,
            parent_batch_id=self.parent_batch_id,
            processing_order_id=self.processing_order_id,
            grade=self.grade,
            crop_year=self.crop_year,
            quality_notes=self.quality_notes,
            received_date=self.received_date,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<CommodityBatch {self.batch_number} {self.status.value} "
            f"{self.current_weight}/{self.received_weight} @ {self.location}>"
        )
