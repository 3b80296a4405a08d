"""
BatchRegistry -- the canonical store of commodity batches.

Responsibility:
    Looks batches up (by id, batch number, receipt token), locks them for
    mutation, and allocates batch numbers.  Only AllocationEngine mutates
    a batch; everything else holds the ids this registry hands out.

Failure modes:
    - BatchNotFoundError when the batch does not exist.
"""

from datetime import date

from sqlalchemy import select

from commodity_kernel.db.repository import Repository
from commodity_kernel.exceptions import BatchNotFoundError
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.services.sequence_service import SequenceService


class BatchRegistry(Repository[CommodityBatch]):
    model = CommodityBatch
    not_found = BatchNotFoundError

    def __init__(self, session):
        super().__init__(session)
        self._sequences = SequenceService(session)

    def find_by_receipt_token(self, token: str) -> CommodityBatch | None:
        return self.session.execute(
            select(CommodityBatch).where(CommodityBatch.receipt_token == token)
        ).scalar_one_or_none()

    def find_by_number(self, batch_number: str) -> CommodityBatch | None:
        return self.session.execute(
            select(CommodityBatch).where(CommodityBatch.batch_number == batch_number)
        ).scalar_one_or_none()

    def next_batch_number(self, commodity_code: str, day: date) -> str:
        return self._sequences.next_batch_number(commodity_code, day)
