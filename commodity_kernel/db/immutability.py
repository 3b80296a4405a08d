"""
ORM-Level Immutability Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable                         | Deletable
---------------------|----------------------------------------|----------
BatchMovement        | ALWAYS (append-only audit trail)       | Never
CommodityBatch       | CONSUMED, or TRANSFERRED at weight 0;  | Never
                     | received_weight is fixed from INSERT   |
PurchaseContract     | (status rules live in ContractLedger)  | Never
PurchaseContractItem | (quantity rules live in ContractLedger)| Never
ProcessingOrder      | (status rules live in ProcessingService)| Never

Audit metadata (updated_at, updated_by_id, version) may always change.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires before_update / before_delete per row during flush.  The
listeners below inspect attribute history and raise
ImmutabilityViolationError before any SQL reaches the database; the
surrounding transaction is then rolled back by its owner.

Usage:
    from commodity_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by CommodityLedger

    # tests that must bypass enforcement
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from commodity_kernel.db.base import AUDIT_FIELDS
from commodity_kernel.domain.lifecycles import is_frozen_batch
from commodity_kernel.exceptions import ImmutabilityViolationError
from commodity_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in AUDIT_FIELDS and attr.history.has_changes()
    ]


def _value_before_flush(target, key: str):
    """The persisted value of `key`, i.e. what the row holds before this UPDATE."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _check_movement_update(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "BatchMovement", target, "UPDATE",
            f"batch movements are append-only (attempted to change {', '.join(changed)})",
        )


def _check_movement_delete(mapper, connection, target):
    raise _blocked("BatchMovement", target, "DELETE", "batch movements are append-only")


def _check_batch_update(mapper, connection, target):
    if get_history(target, "received_weight").deleted:
        raise _blocked(
            "CommodityBatch", target, "UPDATE", "received_weight is fixed at creation"
        )

    previous_status = _value_before_flush(target, "status")
    previous_weight = _value_before_flush(target, "current_weight")
    if is_frozen_batch(previous_status, previous_weight):
        changed = _changed_fields(target)
        if changed:
            status_value = getattr(previous_status, "value", previous_status)
            raise _blocked(
                "CommodityBatch", target, "UPDATE",
                f"batch is {status_value} and frozen "
                f"(attempted to change {', '.join(changed)})",
            )


def _never_delete(entity_type: str):
    def _check(mapper, connection, target):
        raise _blocked(entity_type, target, "DELETE", f"{entity_type} rows are never deleted")

    _check.__name__ = f"_check_{entity_type.lower()}_delete"
    return _check


_check_batch_delete = _never_delete("CommodityBatch")
_check_contract_delete = _never_delete("PurchaseContract")
_check_contract_item_delete = _never_delete("PurchaseContractItem")
_check_order_delete = _never_delete("ProcessingOrder")


def _listeners():
    from commodity_kernel.models import (
        BatchMovement,
        CommodityBatch,
        ProcessingOrder,
        PurchaseContract,
        PurchaseContractItem,
    )

    return (
        (BatchMovement, "before_update", _check_movement_update),
        (BatchMovement, "before_delete", _check_movement_delete),
        (CommodityBatch, "before_update", _check_batch_update),
        (CommodityBatch, "before_delete", _check_batch_delete),
        (PurchaseContract, "before_delete", _check_contract_delete),
        (PurchaseContractItem, "before_delete", _check_contract_item_delete),
        (ProcessingOrder, "before_delete", _check_order_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call repeatedly."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only for tests that must write a violation to verify detection.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
