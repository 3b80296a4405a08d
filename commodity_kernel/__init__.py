"""
Commodity Kernel

A batch lifecycle and quantity-allocation ledger for physical commodities:
- Purchase contracts with over-delivery protection
- Idempotent goods receipts into traceable batches
- A single mutation surface for batch weight and status
- Processing orders with explicit, recorded yield loss
- Transfers that conserve weight exactly, with full lineage
"""

__version__ = "0.1.0"
