"""
Pure domain layer.

Value objects, lifecycle workflows, numbering and quantization with NO
dependencies on SQLAlchemy, the database, or I/O (SystemClock aside).
"""

from commodity_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commodity_kernel.domain.dtos import (
    BatchInfo,
    ContractInfo,
    ContractItemInfo,
    ContractItemSpec,
    FulfillmentSummary,
    GoodsReceipt,
    ItemFulfillment,
    LineageNode,
    MovementInfo,
    ProcessingCompletion,
    ProcessingInputSpec,
    ProcessingOrderInfo,
    ProcessingOutputSpec,
    StockPosition,
    TransferResult,
)
from commodity_kernel.domain.lifecycles import (
    BATCH_WORKFLOW,
    CONTRACT_WORKFLOW,
    PROCESSING_ORDER_WORKFLOW,
    BatchStatus,
    ContractStatus,
    DebitPurpose,
    MovementType,
    ProcessingOrderStatus,
    ProcessingType,
)
from commodity_kernel.domain.quantities import round_money, round_weight, to_weight

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ContractStatus",
    "BatchStatus",
    "ProcessingOrderStatus",
    "ProcessingType",
    "MovementType",
    "DebitPurpose",
    "CONTRACT_WORKFLOW",
    "BATCH_WORKFLOW",
    "PROCESSING_ORDER_WORKFLOW",
    "ContractItemSpec",
    "GoodsReceipt",
    "ProcessingInputSpec",
    "ProcessingOutputSpec",
    "ContractInfo",
    "ContractItemInfo",
    "BatchInfo",
    "MovementInfo",
    "TransferResult",
    "ProcessingOrderInfo",
    "ProcessingCompletion",
    "LineageNode",
    "FulfillmentSummary",
    "ItemFulfillment",
    "StockPosition",
    "round_weight",
    "round_money",
    "to_weight",
]
