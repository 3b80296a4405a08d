"""
Commodity Domain Value Objects (``commodity_kernel.domain.dtos``).

Responsibility
--------------
Frozen value objects that cross the kernel boundary in both directions:

* **Input specs** (``ContractItemSpec``, ``GoodsReceipt``,
  ``ProcessingInputSpec``, ``ProcessingOutputSpec``) validate and normalize
  caller input at construction time.  A spec that exists is well-formed;
  services never re-validate field shapes downstream.
* **Result DTOs** (``ContractInfo``, ``BatchInfo``, ...) are detached
  snapshots returned by the ledger facade and selectors.  They carry no
  session and never lazy-load.

Invariants
----------
- Weights are Decimal quantized to 3 places; money to 9 places.
  Floats are rejected.
- Every input weight is strictly positive; prices and costs are >= 0.

Failure Modes
-------------
- ``ValidationError`` (with ``field_errors``) on any malformed field.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from commodity_kernel.domain.lifecycles import (
    BatchStatus,
    ContractStatus,
    MovementType,
    ProcessingOrderStatus,
    ProcessingType,
)
from commodity_kernel.domain.quantities import ZERO_WEIGHT, round_money, to_money, to_weight
from commodity_kernel.exceptions import ValidationError

# ---------------------------------------------------------------------------
# Field normalization
# ---------------------------------------------------------------------------


def positive_weight(field_name: str, value: Any) -> Decimal:
    """Normalize a caller-supplied weight; it must be a positive, finite decimal."""
    try:
        weight = to_weight(value)
    except (TypeError, ValueError, InvalidOperation):
        raise ValidationError.for_field(field_name, f"not a decimal quantity: {value!r}") from None
    if not weight.is_finite():
        raise ValidationError.for_field(field_name, "must be finite")
    if weight <= 0:
        raise ValidationError.for_field(field_name, f"must be positive, got {weight}")
    return weight


def _money(field_name: str, value: Any) -> Decimal:
    try:
        amount = to_money(value)
    except (TypeError, ValueError, InvalidOperation):
        raise ValidationError.for_field(field_name, f"not a decimal amount: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError.for_field(field_name, f"cannot be negative, got {amount}")
    return amount


def _code(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError.for_field(field_name, "is required")
    return value.strip()


def _commodity(field_name: str, value: Any) -> str:
    return _code(field_name, value).upper()


def _currency(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or len(value.strip()) != 3 or not value.strip().isalpha():
        raise ValidationError.for_field(field_name, f"must be a 3-letter ISO 4217 code, got {value!r}")
    return value.strip().upper()


def _uuid(field_name: str, value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError.for_field(field_name, f"not a valid identifier: {value!r}") from None


# ---------------------------------------------------------------------------
# Input specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractItemSpec:
    """One priced commodity line requested on a new contract."""
    commodity_code: str
    quantity: Decimal
    unit_price: Decimal
    grade: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "commodity_code", _commodity("commodity_code", self.commodity_code))
        object.__setattr__(self, "quantity", positive_weight("quantity", self.quantity))
        object.__setattr__(self, "unit_price", _money("unit_price", self.unit_price))

    @property
    def line_value(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)


@dataclass(frozen=True)
class GoodsReceipt:
    """
    A physical arrival to be turned into a batch.

    cost_per_unit and currency may be omitted when the receipt is linked to
    a contract item; they then default to the item's unit price and the
    contract currency.
    """
    commodity_code: str
    supplier_ref: str
    location: str
    weight: Decimal
    cost_per_unit: Decimal | None = None
    currency: str | None = None
    contract_item_id: UUID | None = None
    idempotency_key: str | None = None
    grade: str | None = None
    crop_year: int | None = None
    quality_notes: str | None = None
    received_date: date | None = None

    def __post_init__(self):
        object.__setattr__(self, "commodity_code", _commodity("commodity_code", self.commodity_code))
        object.__setattr__(self, "supplier_ref", _code("supplier_ref", self.supplier_ref))
        object.__setattr__(self, "location", _code("location", self.location))
        object.__setattr__(self, "weight", positive_weight("weight", self.weight))
        if self.cost_per_unit is not None:
            object.__setattr__(self, "cost_per_unit", _money("cost_per_unit", self.cost_per_unit))
        if self.currency is not None:
            object.__setattr__(self, "currency", _currency("currency", self.currency))
        if self.contract_item_id is not None:
            object.__setattr__(self, "contract_item_id", _uuid("contract_item_id", self.contract_item_id))
        if self.idempotency_key is not None:
            key = _code("idempotency_key", self.idempotency_key)
            if len(key) > 100:
                raise ValidationError.for_field("idempotency_key", "must be at most 100 characters")
            object.__setattr__(self, "idempotency_key", key)
        if self.crop_year is not None and not (1900 <= self.crop_year <= 2200):
            raise ValidationError.for_field("crop_year", f"out of range: {self.crop_year}")


@dataclass(frozen=True)
class ProcessingInputSpec:
    """A planned draw of `quantity` from one batch."""
    batch_id: UUID
    quantity: Decimal

    def __post_init__(self):
        object.__setattr__(self, "batch_id", _uuid("batch_id", self.batch_id))
        object.__setattr__(self, "quantity", positive_weight("quantity", self.quantity))


@dataclass(frozen=True)
class ProcessingOutputSpec:
    """
    One output batch to create on completion.

    commodity_code and location default to those of the lineage parent;
    source_batch_id names the parent and defaults to the order's first input.
    """
    weight: Decimal
    commodity_code: str | None = None
    location: str | None = None
    grade: str | None = None
    source_batch_id: UUID | None = None

    def __post_init__(self):
        object.__setattr__(self, "weight", positive_weight("weight", self.weight))
        if self.commodity_code is not None:
            object.__setattr__(self, "commodity_code", _commodity("commodity_code", self.commodity_code))
        if self.location is not None:
            object.__setattr__(self, "location", _code("location", self.location))
        if self.source_batch_id is not None:
            object.__setattr__(self, "source_batch_id", _uuid("source_batch_id", self.source_batch_id))


def coerce_specs(spec_cls, raw: Any, field_name: str) -> tuple:
    """Accept a sequence of specs or of mappings; return a tuple of specs."""
    if raw is None or isinstance(raw, (str, bytes)):
        raise ValidationError.for_field(field_name, "must be a list")
    specs = []
    for i, item in enumerate(raw):
        if isinstance(item, spec_cls):
            specs.append(item)
        elif isinstance(item, dict):
            try:
                specs.append(spec_cls(**item))
            except TypeError as exc:
                raise ValidationError.for_field(f"{field_name}[{i}]", str(exc)) from None
        else:
            raise ValidationError.for_field(
                f"{field_name}[{i}]", f"expected {spec_cls.__name__}, got {type(item).__name__}"
            )
    return tuple(specs)


# ---------------------------------------------------------------------------
# Result DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractItemInfo:
    id: UUID
    contract_id: UUID
    line_number: int
    commodity_code: str
    grade: str | None
    contracted_quantity: Decimal
    delivered_quantity: Decimal
    unit_price: Decimal
    version: int

    @property
    def remaining_quantity(self) -> Decimal:
        return self.contracted_quantity - self.delivered_quantity

    @property
    def line_value(self) -> Decimal:
        return round_money(self.contracted_quantity * self.unit_price)


@dataclass(frozen=True)
class ContractInfo:
    id: UUID
    contract_number: str
    supplier_ref: str
    status: ContractStatus
    currency: str
    contract_date: date
    delivery_start: date | None
    delivery_end: date | None
    terms: str | None
    notes: str | None
    items: tuple[ContractItemInfo, ...]
    version: int

    @property
    def total_value(self) -> Decimal:
        return round_money(sum((i.line_value for i in self.items), Decimal("0")))

    @property
    def total_quantity(self) -> Decimal:
        return sum((i.contracted_quantity for i in self.items), ZERO_WEIGHT)


@dataclass(frozen=True)
class BatchInfo:
    id: UUID
    batch_number: str
    commodity_code: str
    supplier_ref: str | None
    location: str
    status: BatchStatus
    received_weight: Decimal
    current_weight: Decimal
    cost_per_unit: Decimal
    currency: str
    contract_id: UUID | None
    contract_item_id: UUID | None
    parent_batch_id: UUID | None
    processing_order_id: UUID | None
    grade: str | None
    crop_year: int | None
    quality_notes: str | None
    received_date: date
    version: int

    @property
    def available_weight(self) -> Decimal:
        """Weight that may still be debited; zero for RECEIVED, REJECTED and terminal batches."""
        if self.status in (BatchStatus.APPROVED, BatchStatus.IN_PROCESS):
            return self.current_weight
        return ZERO_WEIGHT

    @property
    def total_value(self) -> Decimal:
        return round_money(self.current_weight * self.cost_per_unit)


@dataclass(frozen=True)
class MovementInfo:
    id: UUID
    reference_number: str
    movement_type: MovementType
    source_batch_id: UUID | None
    destination_batch_id: UUID | None
    source_location: str | None
    destination_location: str | None
    quantity: Decimal
    processing_order_id: UUID | None
    moved_at: datetime


@dataclass(frozen=True)
class TransferResult:
    movement: MovementInfo
    source_batch: BatchInfo
    destination_batch: BatchInfo


@dataclass(frozen=True)
class ProcessingInputInfo:
    line_number: int
    batch_id: UUID
    quantity: Decimal
    cost_allocated: Decimal | None


@dataclass(frozen=True)
class ProcessingOutputInfo:
    line_number: int
    batch_id: UUID
    weight: Decimal
    yield_percentage: Decimal
    grade: str | None


@dataclass(frozen=True)
class ProcessingOrderInfo:
    id: UUID
    order_number: str
    processing_type: ProcessingType
    status: ProcessingOrderStatus
    inputs: tuple[ProcessingInputInfo, ...]
    outputs: tuple[ProcessingOutputInfo, ...]
    total_input_weight: Decimal
    total_output_weight: Decimal | None
    process_loss: Decimal | None
    planned_date: date | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    notes: str | None
    version: int


@dataclass(frozen=True)
class ProcessingCompletion:
    order: ProcessingOrderInfo
    output_batches: tuple[BatchInfo, ...]


@dataclass(frozen=True)
class LineageNode:
    """A batch in a lineage walk; depth 0 is the starting batch."""
    batch: BatchInfo
    depth: int


@dataclass(frozen=True)
class ItemFulfillment:
    contract_item_id: UUID
    commodity_code: str
    contracted: Decimal
    delivered: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.contracted - self.delivered

    @property
    def percent_delivered(self) -> Decimal:
        return (self.delivered * 100 / self.contracted).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class FulfillmentSummary:
    contract_id: UUID
    contract_number: str
    status: ContractStatus
    items: tuple[ItemFulfillment, ...] = field(default_factory=tuple)

    @property
    def is_fully_delivered(self) -> bool:
        return bool(self.items) and all(i.remaining == 0 for i in self.items)


@dataclass(frozen=True)
class StockPosition:
    location: str
    commodity_code: str
    total_weight: Decimal
    batch_count: int
