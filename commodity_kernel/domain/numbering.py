"""
Human-legible numbers for batches and documents.

Batch numbers read ``<COMMODITY>-<YYYYMMDD>-<NNN>`` (e.g. MAIZE-20240301-007);
documents read ``<PREFIX>-<YYYYMMDD>-<NNNN>`` (PC- contracts, PO- processing
orders, TRF- movements).  The running number comes from a locked counter
row per (prefix, day), so numbers are unique without any max()+1 scan.
The NNN part widens past 999 rather than wrapping.
"""

import re
from datetime import date

from commodity_kernel.exceptions import ValidationError

BATCH_NUMBER_PATTERN = re.compile(r"^[A-Z]{2,10}-\d{8}-\d{3,}$")

CONTRACT_PREFIX = "PC"
PROCESSING_ORDER_PREFIX = "PO"
MOVEMENT_PREFIX = "TRF"


def commodity_prefix(commodity_code: str) -> str:
    """Upper-cased letters of the commodity code, at most 10."""
    letters = "".join(ch for ch in commodity_code.upper() if "A" <= ch <= "Z")
    if len(letters) < 2:
        raise ValidationError.for_field(
            "commodity_code",
            f"'{commodity_code}' needs at least two letters to form a batch number",
        )
    return letters[:10]


def batch_sequence_name(prefix: str, day: date) -> str:
    return f"batch:{prefix}:{day:%Y%m%d}"


def document_sequence_name(prefix: str, day: date) -> str:
    return f"doc:{prefix}:{day:%Y%m%d}"


def format_batch_number(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}-{day:%Y%m%d}-{sequence:03d}"


def format_document_number(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}-{day:%Y%m%d}-{sequence:04d}"


def is_valid_batch_number(batch_number: str) -> bool:
    return bool(BATCH_NUMBER_PATTERN.match(batch_number))
