"""
ContractLedger -- purchase contracts, their items, and delivered quantity.

Responsibility:
    Creates contracts in DRAFT, moves them along CONTRACT_WORKFLOW, and is
    the single enforcement point for "a contract cannot receive more than
    it promised".

Architecture position:
    Kernel > Services.  Called by ReceiptProcessor (record_delivery /
    reverse_delivery) and by the CommodityLedger facade.

Invariants enforced:
    - 0 <= delivered <= contracted for every item, checked under a row
      lock on the item before the increment is flushed.
    - Status changes only along CONTRACT_WORKFLOW; a status change never
      cascades to batches.

Failure modes:
    - ValidationError: empty item list, malformed header fields.
    - InvalidStateTransition: edge not in CONTRACT_WORKFLOW.
    - OverDeliveryError: delivered + quantity > contracted.
    - ContractNotFoundError / ContractItemNotFoundError.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from commodity_kernel.db.repository import Repository, coerce_id
from commodity_kernel.domain.dtos import ContractItemSpec
from commodity_kernel.domain.lifecycles import (
    CONTRACT_WORKFLOW,
    ContractStatus,
    require_transition,
)
from commodity_kernel.domain.numbering import CONTRACT_PREFIX
from commodity_kernel.exceptions import (
    ContractItemNotFoundError,
    ContractNotFoundError,
    OverDeliveryError,
    ValidationError,
)
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.contract import PurchaseContract, PurchaseContractItem
from commodity_kernel.services.base import BaseService
from commodity_kernel.services.sequence_service import SequenceService

logger = get_logger("services.contract_ledger")


class ContractRepository(Repository[PurchaseContract]):
    model = PurchaseContract
    not_found = ContractNotFoundError


class ContractItemRepository(Repository[PurchaseContractItem]):
    model = PurchaseContractItem
    not_found = ContractItemNotFoundError


class ContractLedger(BaseService):
    """Owns purchase contracts and contract items."""

    def __init__(self, session, clock=None, **kwargs):
        super().__init__(session, clock, **kwargs)
        self.contracts = ContractRepository(session)
        self.items = ContractItemRepository(session)
        self._sequences = SequenceService(session)

    def create_contract(
        self,
        supplier_ref: str,
        items: Sequence[ContractItemSpec],
        currency: str,
        contract_date: date | None = None,
        delivery_start: date | None = None,
        delivery_end: date | None = None,
        terms: str | None = None,
        notes: str | None = None,
    ) -> PurchaseContract:
        """
        Create a contract in DRAFT with every item's delivered quantity at 0.

        Items arrive as already-validated ContractItemSpec objects, so the
        per-line rules (quantity > 0, price >= 0) hold by construction.
        """
        errors: list[dict] = []
        if not isinstance(supplier_ref, str) or not supplier_ref.strip():
            errors.append({"field": "supplier_ref", "message": "is required"})
        if not items:
            errors.append({"field": "items", "message": "at least one item is required"})
        if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
            errors.append({"field": "currency", "message": f"invalid currency {currency!r}"})
        if delivery_start and delivery_end and delivery_start > delivery_end:
            errors.append(
                {"field": "delivery_end", "message": "delivery window ends before it starts"}
            )
        if errors:
            raise ValidationError(
                "; ".join(f"{e['field']}: {e['message']}" for e in errors), errors
            )

        contract_date = contract_date or self.clock.today()
        contract = PurchaseContract(
            contract_number=self._sequences.next_document_number(CONTRACT_PREFIX, contract_date),
            supplier_ref=supplier_ref.strip(),
            status=ContractStatus.DRAFT,
            currency=currency.upper(),
            contract_date=contract_date,
            delivery_start=delivery_start,
            delivery_end=delivery_end,
            terms=terms,
            notes=notes,
            created_by_id=self.actor_id,
        )
        for line_number, spec in enumerate(items, start=1):
            contract.items.append(
                PurchaseContractItem(
                    line_number=line_number,
                    commodity_code=spec.commodity_code,
                    grade=spec.grade,
                    contracted_quantity=spec.quantity,
                    delivered_quantity=Decimal("0"),
                    unit_price=spec.unit_price,
                    created_by_id=self.actor_id,
                )
            )
        self.contracts.add(contract)
        self.contracts.flush()

        logger.info(
            "contract_created",
            extra={
                "contract_id": str(contract.id),
                "contract_number": contract.contract_number,
                "supplier_ref": contract.supplier_ref,
                "item_count": len(contract.items),
            },
        )
        return contract

    def transition_status(self, contract_id, target: ContractStatus) -> PurchaseContract:
        contract = self.contracts.get_for_update(contract_id)
        previous = contract.status
        transition = require_transition(
            CONTRACT_WORKFLOW, "PurchaseContract", contract.id, previous, target
        )
        contract.status = ContractStatus(transition.to_state)
        contract.updated_by_id = self.actor_id
        self.contracts.flush()

        logger.info(
            "contract_status_changed",
            extra={
                "contract_id": str(contract.id),
                "from_status": previous.value,
                "to_status": contract.status.value,
                "action": transition.action,
            },
        )
        return contract

    def record_delivery(self, contract_item_id, quantity: Decimal) -> PurchaseContractItem:
        """
        Atomically add `quantity` to the item's delivered quantity.

        The item row is locked for the read-modify-write, so two concurrent
        deliveries against the same item are checked one after the other.
        """
        if quantity <= 0:
            raise ValidationError.for_field("quantity", "must be positive")
        item = self.items.get_for_update(contract_item_id)

        # INVARIANT: delivered + quantity <= contracted
        if item.delivered_quantity + quantity > item.contracted_quantity:
            logger.warning(
                "over_delivery_rejected",
                extra={
                    "contract_item_id": str(item.id),
                    "contracted": item.contracted_quantity,
                    "delivered": item.delivered_quantity,
                    "requested": quantity,
                },
            )
            raise OverDeliveryError(
                contract_item_id=str(item.id),
                contracted=item.contracted_quantity,
                delivered=item.delivered_quantity,
                requested=quantity,
            )

        item.delivered_quantity = item.delivered_quantity + quantity
        item.updated_by_id = self.actor_id
        self.items.flush()

        logger.info(
            "delivery_recorded",
            extra={
                "contract_id": str(item.contract_id),
                "contract_item_id": str(item.id),
                "quantity": quantity,
                "delivered": item.delivered_quantity,
                "contracted": item.contracted_quantity,
            },
        )
        return item

    def reverse_delivery(self, contract_item_id, quantity: Decimal) -> PurchaseContractItem:
        """Compensate a record_delivery whose batch could not be created."""
        item = self.items.get_for_update(contract_item_id)
        if quantity <= 0 or quantity > item.delivered_quantity:
            raise ValidationError.for_field(
                "quantity",
                f"cannot reverse {quantity}, only {item.delivered_quantity} delivered",
            )
        item.delivered_quantity = item.delivered_quantity - quantity
        item.updated_by_id = self.actor_id
        self.items.flush()

        logger.warning(
            "delivery_reversed",
            extra={
                "contract_item_id": str(item.id),
                "quantity": quantity,
                "delivered": item.delivered_quantity,
            },
        )
        return item

    def get_contract(self, contract_id) -> PurchaseContract:
        return self.contracts.get(contract_id)

    def get_item(self, contract_item_id) -> PurchaseContractItem:
        return self.items.get(coerce_id(contract_item_id, "contract_item_id"))

    def lock_item(self, contract_item_id) -> PurchaseContractItem:
        return self.items.get_for_update(coerce_id(contract_item_id, "contract_item_id"))
