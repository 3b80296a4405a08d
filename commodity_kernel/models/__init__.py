"""ORM models for the commodity kernel."""

from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.models.contract import PurchaseContract, PurchaseContractItem
from commodity_kernel.models.movement import BatchMovement
from commodity_kernel.models.processing import (
    ProcessingInput,
    ProcessingOrder,
    ProcessingOutput,
)
from commodity_kernel.models.sequence import SequenceCounter

__all__ = [
    "PurchaseContract",
    "PurchaseContractItem",
    "CommodityBatch",
    "ProcessingOrder",
    "ProcessingInput",
    "ProcessingOutput",
    "BatchMovement",
    "SequenceCounter",
]
