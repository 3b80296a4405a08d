"""
Module: commodity_kernel.models.contract
Responsibility: ORM persistence for purchase contracts and their line items.
    The contract is the promise ("1000 MT of maize at 500 USD/MT"); each item
    tracks contracted vs. delivered quantity for one commodity line.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycles.py only.

Invariants enforced:
    - 0 <= delivered_quantity <= contracted_quantity (CHECK constraint; the
      service layer enforces it first under a row lock and raises
      OverDeliveryError).
    - contracted_quantity > 0, unit_price >= 0.
    - Items are owned by exactly one contract and ordered by line_number.
    - Both tables carry a version_id_col for optimistic concurrency.

Failure modes:
    - IntegrityError on duplicate contract_number or (contract_id, line_number).
    - StaleDataError on concurrent modification of the same row.
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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commodity_kernel.db.base import TrackedBase, UUIDString
from commodity_kernel.db.types import Currency, LongText, MoneyAmount, ShortCode, WeightAmount
from commodity_kernel.domain.lifecycles import ContractStatus


class PurchaseContract(TrackedBase):
    """Purchase contract with a supplier."""

    __tablename__ = "purchase_contracts"

    __table_args__ = (
        UniqueConstraint("contract_number", name="uq_purchase_contract_number"),
        Index("idx_purchase_contract_supplier", "supplier_ref"),
        Index("idx_purchase_contract_status", "status"),
        CheckConstraint(
            "delivery_start IS NULL OR delivery_end IS NULL OR delivery_start <= delivery_end",
            name="ck_purchase_contract_delivery_window",
        ),
    )

    contract_number: Mapped[str] = mapped_column(String(30), nullable=False)

    supplier_ref: Mapped[str] = mapped_column(ShortCode, nullable=False)

    status: Mapped[ContractStatus] = mapped_column(
        SAEnum(ContractStatus, native_enum=False, length=20),
        nullable=False,
        default=ContractStatus.DRAFT,
    )

    currency: Mapped[str] = mapped_column(Currency, nullable=False)

    contract_date: Mapped[date] = mapped_column(Date, nullable=False)

    delivery_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    terms: Mapped[str | None] = mapped_column(LongText, nullable=True)
    notes: Mapped[str | None] = mapped_column(LongText, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["PurchaseContractItem"]] = relationship(
        "PurchaseContractItem",
        back_populates="contract",
        order_by="PurchaseContractItem.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from commodity_kernel.domain.dtos import ContractInfo

        return ContractInfo(
            id=self.id,
            contract_number=self.contract_number,
            supplier_ref=self.supplier_ref,
            status=self.status,
            currency=self.currency,
            contract_date=self.contract_date,
            delivery_start=self.delivery_start,
            delivery_end=self.delivery_end,
            terms=self.terms,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<PurchaseContract {self.contract_number} {self.status.value}>"


class PurchaseContractItem(TrackedBase):
    """One priced commodity line of a purchase contract."""

    __tablename__ = "purchase_contract_items"

    __table_args__ = (
        UniqueConstraint("contract_id", "line_number", name="uq_purchase_contract_line"),
        Index("idx_purchase_contract_item_contract", "contract_id"),
        CheckConstraint("contracted_quantity > 0", name="ck_contract_item_contracted_positive"),
        CheckConstraint("delivered_quantity >= 0", name="ck_contract_item_delivered_non_negative"),
        CheckConstraint(
            "delivered_quantity <= contracted_quantity",
            name="ck_contract_item_no_over_delivery",
        ),
        CheckConstraint("unit_price >= 0", name="ck_contract_item_price_non_negative"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_contracts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    commodity_code: Mapped[str] = mapped_column(ShortCode, nullable=False)

    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)

    contracted_quantity: Mapped[Decimal] = mapped_column(WeightAmount(), nullable=False)

    delivered_quantity: Mapped[Decimal] = mapped_column(
        WeightAmount(),
        nullable=False,
        default=Decimal("0"),
    )

    unit_price: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    contract: Mapped[PurchaseContract] = relationship(
        PurchaseContract,
        back_populates="items",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_quantity(self) -> Decimal:
        return self.contracted_quantity - self.delivered_quantity

    def to_dto(self):
        from commodity_kernel.domain.dtos import ContractItemInfo

        return ContractItemInfo(
            id=self.id,
            contract_id=self.contract_id,
            line_number=self.line_number,
            commodity_code=self.commodity_code,
            grade=self.grade,
            contracted_quantity=self.contracted_quantity,
            delivered_quantity=self.delivered_quantity,
            unit_price=self.unit_price,
            version=self.version,
        )
