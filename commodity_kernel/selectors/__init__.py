"""Selectors for the commodity kernel (read side)."""

from commodity_kernel.selectors.batch_selector import BatchSelector
from commodity_kernel.selectors.contract_selector import ContractSelector
from commodity_kernel.selectors.processing_selector import ProcessingSelector

__all__ = [
    "BatchSelector",
    "ContractSelector",
    "ProcessingSelector",
]
