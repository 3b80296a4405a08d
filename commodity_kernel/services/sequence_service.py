"""
SequenceService -- monotonic number allocation via locked counter rows.

Responsibility:
    Hands out the running part of batch numbers (MAIZE-20240301-007) and
    document numbers (PC-/PO-/TRF-20240301-0001).  One counter row per
    (prefix, day), locked with SELECT ... FOR UPDATE, is the sole source
    of truth for the next value.

Invariants enforced:
    - Strictly increasing per sequence name; never max()+1 over the data
      tables.
    - Transactional: a rolled-back caller returns its value.

Failure modes:
    - IntegrityError on a concurrent first use of the same name, handled
      with a savepoint and a re-read under lock.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commodity_kernel.domain.numbering import (
    batch_sequence_name,
    commodity_prefix,
    document_sequence_name,
    format_batch_number,
    format_document_number,
)
from commodity_kernel.logging_config import get_logger
from commodity_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Does NOT commit; the value is consumed only when the caller commits.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the counter row, increment it, return the new value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_batch_number(self, commodity_code: str, day: date) -> str:
        prefix = commodity_prefix(commodity_code)
        return format_batch_number(prefix, day, self.next_value(batch_sequence_name(prefix, day)))

    def next_document_number(self, prefix: str, day: date) -> str:
        return format_document_number(
            prefix, day, self.next_value(document_sequence_name(prefix, day))
        )
