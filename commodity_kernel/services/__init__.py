"""Services for the commodity kernel (write side)."""

from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from commodity_kernel.services.batch_registry import BatchRegistry
from commodity_kernel.services.contract_ledger import ContractLedger
from commodity_kernel.services.ledger import CommodityLedger
from commodity_kernel.services.processing_service import ProcessingService
from commodity_kernel.services.receipt_processor import ReceiptOutcome, ReceiptProcessor
from commodity_kernel.services.sequence_service import SequenceService
from commodity_kernel.services.transfer_engine import TransferEngine

__all__ = [
    "SYSTEM_ACTOR_ID",
    "AllocationEngine",
    "BaseService",
    "BatchRegistry",
    "CommodityLedger",
    "ContractLedger",
    "ProcessingService",
    "ReceiptOutcome",
    "ReceiptProcessor",
    "SequenceService",
    "TransferEngine",
]
