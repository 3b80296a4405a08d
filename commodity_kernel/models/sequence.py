"""
Module: commodity_kernel.models.sequence
Responsibility: Named counter rows backing batch and document numbering.
    Row-level locking in SequenceService keeps numbers unique under
    concurrency without a max()+1 scan.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from commodity_kernel.db.base import Base


class SequenceCounter(Base):
    """One row per sequence name, e.g. "batch:MAIZE:20240301"."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
