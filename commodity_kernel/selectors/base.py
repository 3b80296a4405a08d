"""
Module: commodity_kernel.selectors.base
Responsibility: Base class for read-only queries.  Selectors are the read
    side of the kernel: they take the caller's session, query, and return
    frozen DTOs from commodity_kernel.domain.dtos.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, flush, delete or commit.
    - DTO convention: public methods return DTOs, never ORM instances.
    - Absence is not an error: lookups return None or an empty sequence.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):

    def __init__(self, session: Session):
        self.session = session
