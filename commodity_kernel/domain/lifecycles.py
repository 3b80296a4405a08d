"""
Lifecycle states and workflows for contracts, batches and processing orders.

Every status column in the ORM uses one of the enums below, and every
status change in the services goes through require_transition() against
the matching workflow.
"""

from enum import Enum

from commodity_kernel.domain.workflow import Transition, Workflow
from commodity_kernel.exceptions import InvalidStateTransition


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BatchStatus(str, Enum):
    RECEIVED = "RECEIVED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    IN_PROCESS = "IN_PROCESS"
    CONSUMED = "CONSUMED"
    TRANSFERRED = "TRANSFERRED"


class ProcessingOrderStatus(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ProcessingType(str, Enum):
    CLEANING = "CLEANING"
    SORTING = "SORTING"
    MILLING = "MILLING"
    DRYING = "DRYING"
    PACKAGING = "PACKAGING"
    BLENDING = "BLENDING"


class MovementType(str, Enum):
    TRANSFER = "TRANSFER"
    PROCESSING_IN = "PROCESSING_IN"
    PROCESSING_OUT = "PROCESSING_OUT"
    PROCESSING_REVERSAL = "PROCESSING_REVERSAL"


class DebitPurpose(str, Enum):
    """Why a batch is being debited; decides the status at zero weight."""
    PROCESSING = "PROCESSING"
    TRANSFER = "TRANSFER"


def _states(enum_cls) -> tuple[str, ...]:
    return tuple(s.value for s in enum_cls)


CONTRACT_WORKFLOW = Workflow(
    name="purchase_contract",
    description="Purchase contract approval and fulfilment lifecycle",
    initial_state=ContractStatus.DRAFT.value,
    states=_states(ContractStatus),
    transitions=(
        Transition("DRAFT", "SUBMITTED", action="submit"),
        Transition("SUBMITTED", "ACTIVE", action="activate"),
        Transition("ACTIVE", "COMPLETED", action="complete"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("SUBMITTED", "CANCELLED", action="cancel"),
    ),
    terminal_states=("COMPLETED", "CANCELLED"),
)

# RECEIVED -> APPROVED/REJECTED is quality sign-off.  The remaining edges
# are driven only by AllocationEngine: a processing debit that drains a
# batch parks it IN_PROCESS until the order completes (CONSUMED) or is
# cancelled (back to APPROVED); a transfer that drains it ends TRANSFERRED.
BATCH_WORKFLOW = Workflow(
    name="commodity_batch",
    description="Commodity batch quality and consumption lifecycle",
    initial_state=BatchStatus.RECEIVED.value,
    states=_states(BatchStatus),
    transitions=(
        Transition("RECEIVED", "APPROVED", action="approve"),
        Transition("RECEIVED", "REJECTED", action="reject"),
        Transition("APPROVED", "IN_PROCESS", action="drain_for_processing"),
        Transition("IN_PROCESS", "APPROVED", action="restore"),
        Transition("IN_PROCESS", "CONSUMED", action="consume"),
        Transition("APPROVED", "TRANSFERRED", action="drain_for_transfer"),
    ),
    terminal_states=("REJECTED", "CONSUMED", "TRANSFERRED"),
)

PROCESSING_ORDER_WORKFLOW = Workflow(
    name="processing_order",
    description="Transformation of input batches into output batches",
    initial_state=ProcessingOrderStatus.PLANNED.value,
    states=_states(ProcessingOrderStatus),
    transitions=(
        Transition("PLANNED", "IN_PROGRESS", action="start"),
        Transition("IN_PROGRESS", "COMPLETED", action="complete"),
        Transition("PLANNED", "CANCELLED", action="cancel"),
        Transition("IN_PROGRESS", "CANCELLED", action="cancel"),
    ),
    terminal_states=("COMPLETED", "CANCELLED"),
)

# Statuses from which a batch may be debited.
DEBITABLE_BATCH_STATUSES: tuple[BatchStatus, ...] = (
    BatchStatus.APPROVED,
    BatchStatus.IN_PROCESS,
)


def require_transition(
    workflow: Workflow,
    entity_type: str,
    entity_id,
    current: Enum | str,
    target: Enum | str,
) -> Transition:
    """Return the workflow edge current -> target or raise InvalidStateTransition."""
    current_value = current.value if isinstance(current, Enum) else current
    target_value = target.value if isinstance(target, Enum) else target
    transition = workflow.find(current_value, target_value)
    if transition is None:
        raise InvalidStateTransition(
            entity_type=entity_type,
            entity_id=str(entity_id),
            current_status=current_value,
            target_status=target_value,
        )
    return transition


def is_frozen_batch(status: BatchStatus | str, current_weight) -> bool:
    """CONSUMED batches and fully TRANSFERRED batches never change again."""
    value = status.value if isinstance(status, Enum) else status
    if value == BatchStatus.CONSUMED.value:
        return True
    return value == BatchStatus.TRANSFERRED.value and current_weight == 0
