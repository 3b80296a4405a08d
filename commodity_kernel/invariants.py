"""
Kernel Invariants Contract.

These invariants are structural law for the commodity ledger. No
LedgerConfig setting may switch them off.

This module only declares them. Enforcement is distributed across the
ContractLedger, AllocationEngine, ProcessingService, TransferEngine,
the version column on every mutable root, and db/immutability.py.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NO_OVER_DELIVERY = "no_over_delivery"
    """0 <= delivered <= contracted for every contract item. Enforced by
    ContractLedger.record_delivery under a row lock."""

    WEIGHT_BOUNDS = "weight_bounds"
    """0 <= current_weight <= received_weight for every batch. Enforced by
    AllocationEngine and DB check constraints."""

    CONSERVATION = "conservation"
    """Quantity is only moved or split. A transfer credits exactly what it
    debits; processing credits at most what it debits and records the loss."""

    SINGLE_MUTATION_SURFACE = "single_mutation_surface"
    """Only AllocationEngine changes batch weight or batch status."""

    SERIALIZED_MUTATION = "serialized_mutation"
    """At most one in-flight mutation per batch or contract item. Enforced by
    row locks plus the version_id_col on each mutable root."""

    IDEMPOTENT_RECEIPT = "idempotent_receipt"
    """One idempotency token yields at most one batch. Enforced by a unique
    constraint on commodity_batches.receipt_token."""

    APPEND_ONLY_MOVEMENTS = "append_only_movements"
    """Batch movements are never updated or deleted. Enforced by ORM
    listeners in db/immutability.py."""

    TERMINAL_BATCH_FROZEN = "terminal_batch_frozen"
    """CONSUMED batches and fully TRANSFERRED batches never change again."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# Inner layers may not import outer ones.
# Enforced by tests/architecture/test_layer_boundaries.py.
FORBIDDEN_LAYER_IMPORTS: dict[str, tuple[str, ...]] = {
    "commodity_kernel.domain": (
        "commodity_kernel.db",
        "commodity_kernel.models",
        "commodity_kernel.services",
        "commodity_kernel.selectors",
        "sqlalchemy",
    ),
    "commodity_kernel.db": (
        "commodity_kernel.services",
        "commodity_kernel.selectors",
    ),
    "commodity_kernel.models": (
        "commodity_kernel.services",
        "commodity_kernel.selectors",
    ),
    "commodity_kernel.selectors": (
        "commodity_kernel.services",
    ),
}
