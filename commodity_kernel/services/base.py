"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Every service
    receives the caller's Session, a Clock, and the acting user id, and
    persists with ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back.  The owner (CommodityLedger, or a test)
    controls commit/rollback, which is what makes a multi-step operation
    such as startProcessingOrder all-or-nothing.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from commodity_kernel.domain.clock import Clock, SystemClock

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


class BaseService(ABC):
    """Holds the session, clock and actor shared by every service call."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.actor_id = actor_id
