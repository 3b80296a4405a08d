"""
CommodityLedger -- the operation surface of the commodity kernel.

Responsibility:
    One method per externally visible operation.  Each mutating call runs
    as one unit of work: a fresh session, the service call, commit.  Any
    failure rolls the whole unit back, so no partial write is ever
    observable.  Results are returned as frozen DTOs.

Architecture position:
    Kernel > Services (outermost).  The only place that commits.  An API
    layer maps its transport onto these methods.

Invariants enforced:
    - Only ConcurrencyConflictError is retried, at most
      config.max_conflict_retries times, each attempt in a new session.
      Every other error surfaces to the caller on the first attempt.
    - StaleDataError raised by the work (autoflush) or at commit is
      reported as ConcurrencyConflictError.
    - Immutability listeners are registered before the first unit of work.

Usage:
    config = load_config("ledger.yaml")
    ledger = CommodityLedger.from_config(config)

    contract = ledger.create_contract(
        "SUP-001",
        [{"commodity_code": "MAIZE", "quantity": "1000", "unit_price": "500"}],
    )
    ledger.transition_contract_status(contract.id, "SUBMITTED")
    ledger.transition_contract_status(contract.id, "ACTIVE")
    batch = ledger.receive_goods(
        commodity_code="MAIZE",
        supplier_ref="SUP-001",
        location="WH-A",
        weight="400",
        contract_item_id=contract.items[0].id,
        idempotency_key="GRN-2024-0001",
    )
"""

from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from commodity_kernel.config import LedgerConfig
from commodity_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from commodity_kernel.db.immutability import register_immutability_listeners
from commodity_kernel.domain.clock import Clock, SystemClock
from commodity_kernel.domain.dtos import (
    BatchInfo,
    ContractInfo,
    ContractItemSpec,
    FulfillmentSummary,
    GoodsReceipt,
    LineageNode,
    MovementInfo,
    ProcessingCompletion,
    ProcessingInputSpec,
    ProcessingOrderInfo,
    ProcessingOutputSpec,
    StockPosition,
    TransferResult,
    coerce_specs,
    positive_weight,
)
from commodity_kernel.domain.lifecycles import (
    ContractStatus,
    ProcessingOrderStatus,
    ProcessingType,
)
from commodity_kernel.exceptions import (
    BatchNotFoundError,
    ConcurrencyConflictError,
    ContractNotFoundError,
    ProcessingOrderNotFoundError,
    ValidationError,
)
from commodity_kernel.logging_config import LogContext, configure_logging, get_logger
from commodity_kernel.selectors.batch_selector import BatchSelector
from commodity_kernel.selectors.contract_selector import ContractSelector
from commodity_kernel.selectors.processing_selector import ProcessingSelector
from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.base import SYSTEM_ACTOR_ID
from commodity_kernel.services.contract_ledger import ContractLedger
from commodity_kernel.services.processing_service import ProcessingService
from commodity_kernel.services.receipt_processor import ReceiptProcessor
from commodity_kernel.services.transfer_engine import TransferEngine

logger = get_logger("services.ledger")

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


def _as_enum(enum_cls: type[E], value: Any, field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationError.for_field(
            field, f"must be one of {[m.value for m in enum_cls]}, got {value!r}"
        ) from None


class CommodityLedger:
    """Transactional facade over the commodity kernel services."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self.config = config or LedgerConfig()
        self._session_factory = session_factory or get_session_factory()
        self.clock = clock or SystemClock()
        self.actor_id = actor_id
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        *,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> "CommodityLedger":
        """Initialize logging, the engine and the schema, then build a ledger."""
        configure_logging(level=config.log_level)
        init_engine_from_url(
            config.database_url,
            echo=config.echo_sql,
            sqlite_busy_timeout=config.sqlite_busy_timeout,
        )
        create_tables()
        return cls(get_session_factory(), config=config, clock=clock, actor_id=actor_id)

    def as_actor(self, actor_id: UUID) -> "CommodityLedger":
        """Same ledger, recording `actor_id` on every row it writes."""
        return CommodityLedger(
            self._session_factory, config=self.config, clock=self.clock, actor_id=actor_id
        )

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(self, operation: str, work: Callable[[Session], T], **context: Any) -> T:
        attempts = self.config.max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            session = self._session_factory()
            try:
                with LogContext.bind(operation=operation, actor_id=self.actor_id, **context):
                    try:
                        result = work(session)
                        session.commit()
                    except StaleDataError as exc:
                        raise ConcurrencyConflictError(operation) from exc
                    return result
            except ConcurrencyConflictError as exc:
                session.rollback()
                if attempt == attempts:
                    logger.warning(
                        "concurrency_conflict_exhausted",
                        extra={"operation": operation, "attempts": attempt, "entity_type": exc.entity_type},
                    )
                    raise
                logger.info(
                    "concurrency_conflict_retry",
                    extra={"operation": operation, "attempt": attempt, "entity_type": exc.entity_type},
                )
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        raise AssertionError("unreachable")

    def _read(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return work(session)
        finally:
            session.rollback()
            session.close()

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def create_contract(
        self,
        supplier_ref: str,
        items: Sequence[ContractItemSpec | dict],
        currency: str | None = None,
        *,
        contract_date: date | None = None,
        delivery_start: date | None = None,
        delivery_end: date | None = None,
        terms: str | None = None,
        notes: str | None = None,
    ) -> ContractInfo:
        specs = coerce_specs(ContractItemSpec, items, "items")

        def work(session: Session) -> ContractInfo:
            ledger = ContractLedger(session, self.clock, actor_id=self.actor_id)
            contract = ledger.create_contract(
                supplier_ref,
                specs,
                currency or self.config.default_currency,
                contract_date=contract_date,
                delivery_start=delivery_start,
                delivery_end=delivery_end,
                terms=terms,
                notes=notes,
            )
            return contract.to_dto()

        return self._run("create_contract", work)

    def transition_contract_status(self, contract_id, target: ContractStatus | str) -> ContractInfo:
        target = _as_enum(ContractStatus, target, "target")

        def work(session: Session) -> ContractInfo:
            ledger = ContractLedger(session, self.clock, actor_id=self.actor_id)
            return ledger.transition_status(contract_id, target).to_dto()

        return self._run("transition_contract_status", work, contract_id=contract_id)

    # ------------------------------------------------------------------
    # Receipts and quality sign-off
    # ------------------------------------------------------------------

    def receive_goods(self, receipt: GoodsReceipt | None = None, **fields: Any) -> BatchInfo:
        """
        Record a physical arrival as a new RECEIVED batch.

        Accepts a GoodsReceipt or its fields as keyword arguments.  A replay
        of an idempotency key with the same payload returns the batch that
        key already produced.
        """
        if receipt is None:
            try:
                receipt = GoodsReceipt(**fields)
            except TypeError as exc:
                raise ValidationError(str(exc)) from None
        elif fields:
            raise ValidationError("pass either a GoodsReceipt or receipt fields, not both")

        def work(session: Session) -> BatchInfo:
            processor = ReceiptProcessor(
                session,
                self.clock,
                actor_id=self.actor_id,
                default_currency=self.config.default_currency,
                require_active_contract=self.config.require_active_contract,
            )
            return processor.receive_goods(receipt).batch.to_dto()

        return self._run(
            "receive_goods",
            work,
            idempotency_key=receipt.idempotency_key,
        )

    def approve_batch(self, batch_id) -> BatchInfo:
        def work(session: Session) -> BatchInfo:
            engine = AllocationEngine(session, self.clock, actor_id=self.actor_id)
            return engine.approve(batch_id).to_dto()

        return self._run("approve_batch", work, batch_id=batch_id)

    def reject_batch(self, batch_id, reason: str | None = None) -> BatchInfo:
        def work(session: Session) -> BatchInfo:
            engine = AllocationEngine(session, self.clock, actor_id=self.actor_id)
            return engine.reject(batch_id, reason).to_dto()

        return self._run("reject_batch", work, batch_id=batch_id)

    # ------------------------------------------------------------------
    # Processing orders
    # ------------------------------------------------------------------

    def create_processing_order(
        self,
        processing_type: ProcessingType | str,
        inputs: Sequence[ProcessingInputSpec | dict],
        *,
        planned_date: date | None = None,
        notes: str | None = None,
    ) -> ProcessingOrderInfo:
        processing_type = _as_enum(ProcessingType, processing_type, "processing_type")
        specs = coerce_specs(ProcessingInputSpec, inputs, "inputs")

        def work(session: Session) -> ProcessingOrderInfo:
            service = ProcessingService(session, self.clock, actor_id=self.actor_id)
            return service.create_order(
                processing_type, specs, planned_date=planned_date, notes=notes
            ).to_dto()

        return self._run("create_processing_order", work)

    def start_processing_order(self, order_id) -> ProcessingOrderInfo:
        def work(session: Session) -> ProcessingOrderInfo:
            service = ProcessingService(session, self.clock, actor_id=self.actor_id)
            return service.start_order(order_id).to_dto()

        return self._run("start_processing_order", work, order_id=order_id)

    def complete_processing_order(
        self, order_id, outputs: Sequence[ProcessingOutputSpec | dict]
    ) -> ProcessingCompletion:
        specs = coerce_specs(ProcessingOutputSpec, outputs, "outputs")

        def work(session: Session) -> ProcessingCompletion:
            service = ProcessingService(session, self.clock, actor_id=self.actor_id)
            order, batches = service.complete_order(order_id, specs)
            return ProcessingCompletion(
                order=order.to_dto(),
                output_batches=tuple(b.to_dto() for b in batches),
            )

        return self._run("complete_processing_order", work, order_id=order_id)

    def cancel_processing_order(self, order_id, reason: str | None = None) -> ProcessingOrderInfo:
        def work(session: Session) -> ProcessingOrderInfo:
            service = ProcessingService(session, self.clock, actor_id=self.actor_id)
            return service.cancel_order(order_id, reason).to_dto()

        return self._run("cancel_processing_order", work, order_id=order_id)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer_batch(self, batch_id, destination_location: str, quantity) -> TransferResult:
        quantity = positive_weight("quantity", quantity)

        def work(session: Session) -> TransferResult:
            engine = TransferEngine(session, self.clock, actor_id=self.actor_id)
            movement, source, destination = engine.transfer(
                batch_id, destination_location, quantity
            )
            return TransferResult(
                movement=movement.to_dto(),
                source_batch=source.to_dto(),
                destination_batch=destination.to_dto(),
            )

        return self._run("transfer_batch", work, batch_id=batch_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_contract(self, contract_id) -> ContractInfo:
        contract = self._read(lambda s: ContractSelector(s).get(contract_id))
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def list_contracts(
        self, status: ContractStatus | str | None = None, supplier_ref: str | None = None
    ) -> list[ContractInfo]:
        if status is not None:
            status = _as_enum(ContractStatus, status, "status")
        return self._read(lambda s: ContractSelector(s).list_contracts(status, supplier_ref))

    def contract_fulfillment(self, contract_id) -> FulfillmentSummary:
        summary = self._read(lambda s: ContractSelector(s).fulfillment(contract_id))
        if summary is None:
            raise ContractNotFoundError(str(contract_id))
        return summary

    def get_batch(self, batch_id) -> BatchInfo:
        batch = self._read(lambda s: BatchSelector(s).get(batch_id))
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def get_batch_by_number(self, batch_number: str) -> BatchInfo:
        batch = self._read(lambda s: BatchSelector(s).get_by_number(batch_number))
        if batch is None:
            raise BatchNotFoundError(batch_number)
        return batch

    def list_available_batches(
        self, location: str | None = None, commodity_code: str | None = None
    ) -> list[BatchInfo]:
        return self._read(lambda s: BatchSelector(s).available(location, commodity_code))

    def stock_positions(self, location: str | None = None) -> list[StockPosition]:
        return self._read(lambda s: BatchSelector(s).stock_positions(location))

    def batch_ancestors(self, batch_id) -> list[LineageNode]:
        nodes = self._read(lambda s: BatchSelector(s).ancestors(batch_id))
        if not nodes:
            raise BatchNotFoundError(str(batch_id))
        return nodes

    def batch_descendants(self, batch_id) -> list[LineageNode]:
        nodes = self._read(lambda s: BatchSelector(s).descendants(batch_id))
        if not nodes:
            raise BatchNotFoundError(str(batch_id))
        return nodes

    def batch_movements(self, batch_id) -> list[MovementInfo]:
        return self._read(lambda s: BatchSelector(s).movements(batch_id))

    def transfer_lineage_total(self, batch_id) -> Decimal:
        self.get_batch(batch_id)
        return self._read(lambda s: BatchSelector(s).transfer_lineage_total(batch_id))

    def get_processing_order(self, order_id) -> ProcessingOrderInfo:
        order = self._read(lambda s: ProcessingSelector(s).get(order_id))
        if order is None:
            raise ProcessingOrderNotFoundError(str(order_id))
        return order

    def list_processing_orders(
        self, status: ProcessingOrderStatus | str | None = None
    ) -> list[ProcessingOrderInfo]:
        if status is not None:
            status = _as_enum(ProcessingOrderStatus, status, "status")
        return self._read(lambda s: ProcessingSelector(s).list_orders(status))

    def processing_orders_for_batch(self, batch_id) -> list[ProcessingOrderInfo]:
        return self._read(lambda s: ProcessingSelector(s).orders_for_batch(batch_id))
