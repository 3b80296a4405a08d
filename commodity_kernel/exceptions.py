"""
Typed Exception Hierarchy for the Commodity Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Quantity bookkeeping must fail precisely. Callers (an API layer, a batch
job, a test) need to tell "the batch ran out" apart from "the batch was
rejected" without parsing message strings. Every exception therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (ids, quantities, statuses)

Example:
    try:
        ledger.transfer_batch(batch_id, "WH-B", Decimal("40"))
    except InsufficientQuantityError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommodityKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- ContractItemNotFoundError
    |   +-- BatchNotFoundError
    |   +-- ProcessingOrderNotFoundError
    |
    +-- StateError
    |   +-- InvalidStateTransition
    |   +-- InvalidBatchStateError
    |   +-- ContractNotActiveError
    |
    +-- QuantityError
    |   +-- OverDeliveryError
    |   +-- InsufficientQuantityError
    |   +-- ConservationViolationError
    |
    +-- ConcurrencyConflictError
    |
    +-- IdempotencyConflictError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------------
Validation   | VALIDATION_ERROR          | Malformed input, before any state change
-------------|---------------------------|------------------------------------------
Not found    | CONTRACT_NOT_FOUND        | Contract id does not exist
             | CONTRACT_ITEM_NOT_FOUND   | Contract item id does not exist
             | BATCH_NOT_FOUND           | Batch id does not exist
             | PROCESSING_ORDER_NOT_FOUND| Processing order id does not exist
-------------|---------------------------|------------------------------------------
State        | INVALID_STATE_TRANSITION  | Lifecycle edge not in the workflow
             | INVALID_BATCH_STATE       | Batch status forbids the operation
             | CONTRACT_NOT_ACTIVE       | Receipt against a non-ACTIVE contract
-------------|---------------------------|------------------------------------------
Quantity     | OVER_DELIVERY             | delivered + qty > contracted
             | INSUFFICIENT_QUANTITY     | current weight < requested debit
             | CONSERVATION_VIOLATION    | Credits exceed the debit they split
-------------|---------------------------|------------------------------------------
Concurrency  | CONCURRENCY_CONFLICT      | Version stamp mismatch, caller may retry
-------------|---------------------------|------------------------------------------
Idempotency  | IDEMPOTENCY_CONFLICT      | Token reused with a different payload
-------------|---------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | Mutating a movement or a terminal batch

Only ConcurrencyConflictError is ever retried, and only by the ledger
facade (services/ledger.py).  Everything else surfaces to the caller with
the unit of work rolled back.
"""

from decimal import Decimal


class CommodityKernelError(Exception):
    """
    Base exception for all commodity kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COMMODITY_KERNEL_ERROR"


# Validation


class ValidationError(CommodityKernelError):
    """
    Input is malformed.  Raised before any state change.

    field_errors is a list of {"field": ..., "message": ...} dicts so an API
    layer can map them back onto a form.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: list[dict] | None = None):
        self.message = message
        self.field_errors = field_errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", [{"field": field, "message": message}])


# Not found


class NotFoundError(CommodityKernelError):
    """Referenced entity is absent."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ContractNotFoundError(NotFoundError):
    code: str = "CONTRACT_NOT_FOUND"
    entity_type = "PurchaseContract"


class ContractItemNotFoundError(NotFoundError):
    code: str = "CONTRACT_ITEM_NOT_FOUND"
    entity_type = "PurchaseContractItem"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"
    entity_type = "CommodityBatch"


class ProcessingOrderNotFoundError(NotFoundError):
    code: str = "PROCESSING_ORDER_NOT_FOUND"
    entity_type = "ProcessingOrder"


# State


class StateError(CommodityKernelError):
    """Base exception for operations not legal in the current status."""

    code: str = "STATE_ERROR"


class InvalidStateTransition(StateError):
    """Lifecycle edge is not part of the entity's workflow."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        target_status: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot transition {entity_type} {entity_id} "
            f"from {current_status} to {target_status}"
        )


class InvalidBatchStateError(StateError):
    """Batch status does not permit the requested operation."""

    code: str = "INVALID_BATCH_STATE"

    def __init__(
        self,
        batch_id: str,
        current_status: str,
        operation: str,
        allowed: tuple[str, ...] = (),
    ):
        self.batch_id = str(batch_id)
        self.current_status = current_status
        self.operation = operation
        self.allowed = allowed
        expected = f" (requires one of {', '.join(allowed)})" if allowed else ""
        super().__init__(
            f"Batch {batch_id} in status {current_status} cannot {operation}{expected}"
        )


class ContractNotActiveError(StateError):
    """Goods may only be received against an ACTIVE contract."""

    code: str = "CONTRACT_NOT_ACTIVE"

    def __init__(self, contract_id: str, current_status: str):
        self.contract_id = str(contract_id)
        self.current_status = current_status
        super().__init__(
            f"Contract {contract_id} is {current_status}, receipts require ACTIVE"
        )


# Quantity / conservation


class QuantityError(CommodityKernelError):
    """Base exception for conservation-invariant violations."""

    code: str = "QUANTITY_ERROR"


class OverDeliveryError(QuantityError):
    """A contract item cannot receive more than it promised."""

    code: str = "OVER_DELIVERY"

    def __init__(
        self,
        contract_item_id: str,
        contracted: Decimal,
        delivered: Decimal,
        requested: Decimal,
    ):
        self.contract_item_id = str(contract_item_id)
        self.contracted = contracted
        self.delivered = delivered
        self.requested = requested
        super().__init__(
            f"Delivery of {requested} on item {contract_item_id} exceeds "
            f"contract: delivered {delivered} of {contracted}"
        )


class InsufficientQuantityError(QuantityError):
    """Batch does not hold enough weight for the debit."""

    code: str = "INSUFFICIENT_QUANTITY"

    def __init__(self, batch_id: str, available: Decimal, requested: Decimal):
        self.batch_id = str(batch_id)
        self.available = available
        self.requested = requested
        super().__init__(
            f"Batch {batch_id} has {available} available, {requested} requested"
        )


class ConservationViolationError(QuantityError):
    """Credited weight exceeds the debited weight it was split from."""

    code: str = "CONSERVATION_VIOLATION"

    def __init__(self, context: str, debited: Decimal, credited: Decimal):
        self.context = context
        self.debited = debited
        self.credited = credited
        super().__init__(
            f"Conservation violated in {context}: "
            f"credited {credited} against debit of {debited}"
        )


# Concurrency


class ConcurrencyConflictError(CommodityKernelError):
    """
    The entity's version stamp changed under us.

    Safe to retry: the unit of work that raised it has been rolled back.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = str(entity_id) if entity_id is not None else None
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id or ''}".rstrip()
        )


# Idempotency


class IdempotencyConflictError(CommodityKernelError):
    """Idempotency token was reused with a different payload."""

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_batch_id: str, mismatched: list[str]):
        self.idempotency_key = idempotency_key
        self.existing_batch_id = str(existing_batch_id)
        self.mismatched = mismatched
        super().__init__(
            f"Idempotency key {idempotency_key} already produced batch "
            f"{existing_batch_id} with different {', '.join(mismatched)}"
        )


# Immutability


class ImmutabilityViolationError(CommodityKernelError):
    """Attempted to modify or delete a record that is frozen."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
