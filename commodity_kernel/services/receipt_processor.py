"""
ReceiptProcessor -- converts a physical arrival into a new batch.

Responsibility:
    receive_goods() validates the receipt, records the delivery against the
    contract item (if any), and registers the RECEIVED batch through
    AllocationEngine.

Architecture position:
    Kernel > Services.  Calls ContractLedger then AllocationEngine.

Invariants enforced:
    - All-or-nothing: if record_delivery fails, no batch is created.
    - Ordering: the delivery increment is checked and flushed strictly
      before the batch row exists.  If batch creation then fails, the
      increment is compensated with reverse_delivery inside the same
      transaction and the original error is re-raised.
    - Idempotency: one idempotency key produces at most one batch.  A
      replay with the same payload returns the original batch; a replay
      with a different payload is refused.
      The key is looked up again once the contract item is locked, so a
      same-key receipt that committed meanwhile is returned, not re-delivered.

Failure modes:
    - ValidationError: malformed receipt, commodity or supplier mismatch
      with the contract item, currency mismatch with the contract.
    - ContractNotActiveError: linked contract is not ACTIVE.
    - OverDeliveryError: delivery would exceed the contracted quantity.
    - ContractItemNotFoundError.
    - IdempotencyConflictError: key reused with a different payload.
    - ConcurrencyConflictError: a concurrent receipt claimed the same key
      first; the retried unit of work returns that batch.
"""

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from commodity_kernel.domain.dtos import GoodsReceipt
from commodity_kernel.domain.lifecycles import ContractStatus
from commodity_kernel.exceptions import (
    ConcurrencyConflictError,
    ContractNotActiveError,
    IdempotencyConflictError,
    ValidationError,
)
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.base import BaseService
from commodity_kernel.services.contract_ledger import ContractLedger

logger = get_logger("services.receipt")


@dataclass(frozen=True)
class ReceiptOutcome:
    batch: CommodityBatch
    created: bool


class ReceiptProcessor(BaseService):
    """Turns goods receipts into batches."""

    def __init__(
        self,
        session,
        clock=None,
        *,
        default_currency: str = "USD",
        require_active_contract: bool = True,
        **kwargs,
    ):
        super().__init__(session, clock, **kwargs)
        self.contracts = ContractLedger(session, clock, **kwargs)
        self.allocation = AllocationEngine(session, clock, **kwargs)
        self.default_currency = default_currency
        self.require_active_contract = require_active_contract

    def receive_goods(self, receipt: GoodsReceipt) -> ReceiptOutcome:
        replay = self._find_replay(receipt)
        if replay is not None:
            return replay

        cost_per_unit = receipt.cost_per_unit
        currency = receipt.currency
        contract_id = None

        if receipt.contract_item_id is not None:
            item = self.contracts.lock_item(receipt.contract_item_id)
            # A receipt with the same key may have committed while we waited
            # for the item lock.
            replay = self._find_replay(receipt)
            if replay is not None:
                return replay
            contract = item.contract
            self._check_against_contract(receipt, item, contract)
            contract_id = contract.id
            if cost_per_unit is None:
                cost_per_unit = item.unit_price
            currency = currency or contract.currency

            # Contract side first: a failure here leaves nothing to undo.
            self.contracts.record_delivery(item.id, receipt.weight)

        if cost_per_unit is None:
            raise ValidationError.for_field(
                "cost_per_unit", "is required when the receipt is not linked to a contract item"
            )
        currency = currency or self.default_currency

        try:
            with self.session.begin_nested():
                batch = self.allocation.register_receipt(
                    receipt,
                    cost_per_unit=cost_per_unit,
                    currency=currency,
                    contract_id=contract_id,
                )
        except Exception as exc:
            if receipt.contract_item_id is not None:
                self.contracts.reverse_delivery(receipt.contract_item_id, receipt.weight)
                logger.warning(
                    "goods_receipt_compensated",
                    extra={
                        "contract_item_id": str(receipt.contract_item_id),
                        "weight": receipt.weight,
                        "error": type(exc).__name__,
                    },
                )
            if isinstance(exc, IntegrityError) and receipt.idempotency_key is not None:
                raise ConcurrencyConflictError("CommodityBatch", receipt.idempotency_key) from exc
            raise

        logger.info(
            "goods_received",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "commodity_code": batch.commodity_code,
                "weight": batch.received_weight,
                "location": batch.location,
                "contract_item_id": str(receipt.contract_item_id) if receipt.contract_item_id else None,
            },
        )
        return ReceiptOutcome(batch=batch, created=True)

    def _find_replay(self, receipt: GoodsReceipt) -> ReceiptOutcome | None:
        if receipt.idempotency_key is None:
            return None
        existing = self.allocation.registry.find_by_receipt_token(receipt.idempotency_key)
        if existing is None:
            return None
        self._check_replay(receipt, existing)
        logger.info(
            "goods_receipt_replayed",
            extra={
                "batch_id": str(existing.id),
                "batch_number": existing.batch_number,
            },
        )
        return ReceiptOutcome(batch=existing, created=False)

    def _check_against_contract(self, receipt: GoodsReceipt, item, contract) -> None:
        if self.require_active_contract and contract.status != ContractStatus.ACTIVE:
            raise ContractNotActiveError(str(contract.id), contract.status.value)

        errors: list[dict] = []
        if receipt.commodity_code != item.commodity_code:
            errors.append({
                "field": "commodity_code",
                "message": f"contract item is for {item.commodity_code}",
            })
        if receipt.supplier_ref != contract.supplier_ref:
            errors.append({
                "field": "supplier_ref",
                "message": f"contract is with supplier {contract.supplier_ref}",
            })
        if receipt.currency is not None and receipt.currency != contract.currency:
            errors.append({
                "field": "currency",
                "message": f"contract is priced in {contract.currency}",
            })
        if errors:
            raise ValidationError(
                "; ".join(f"{e['field']}: {e['message']}" for e in errors), errors
            )

    @staticmethod
    def _check_replay(receipt: GoodsReceipt, batch: CommodityBatch) -> None:
        mismatched = []
        if receipt.commodity_code != batch.commodity_code:
            mismatched.append("commodity_code")
        if receipt.supplier_ref != batch.supplier_ref:
            mismatched.append("supplier_ref")
        if receipt.location != batch.location:
            mismatched.append("location")
        if receipt.weight != batch.received_weight:
            mismatched.append("weight")
        if receipt.contract_item_id != batch.contract_item_id:
            mismatched.append("contract_item_id")
        if receipt.cost_per_unit is not None and receipt.cost_per_unit != batch.cost_per_unit:
            mismatched.append("cost_per_unit")
        if receipt.currency is not None and receipt.currency != batch.currency:
            mismatched.append("currency")
        if mismatched:
            logger.warning(
                "idempotency_conflict",
                extra={"batch_id": str(batch.id), "mismatched": mismatched},
            )
            raise IdempotencyConflictError(
                receipt.idempotency_key, str(batch.id), mismatched
            )
