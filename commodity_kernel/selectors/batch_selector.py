"""
Module: commodity_kernel.selectors.batch_selector
Responsibility: Read access to batches: available inventory, stock
    positions, lineage walks, movement history and the transfer-lineage
    conservation total.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Available inventory is APPROVED or IN_PROCESS weight above zero;
      RECEIVED, REJECTED and terminal batches never count.
    - Lineage walks visit each batch once and report the shortest depth
      at which it was reached.

Audit relevance:
    Lineage follows two kinds of edge: parent_batch_id (transfers,
    processing outputs, restored lots) and processing order membership
    (every input of the order that produced a batch is its ancestor).
    TRANSFERRED and CONSUMED batches are kept precisely so these walks
    stay complete.
"""

from collections import deque
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from commodity_kernel.db.repository import coerce_id
from commodity_kernel.domain.dtos import BatchInfo, LineageNode, MovementInfo, StockPosition
from commodity_kernel.domain.lifecycles import (
    DEBITABLE_BATCH_STATUSES,
    MovementType,
    ProcessingOrderStatus,
)
from commodity_kernel.domain.quantities import ZERO_WEIGHT
from commodity_kernel.models.batch import CommodityBatch
from commodity_kernel.models.movement import BatchMovement
from commodity_kernel.models.processing import ProcessingInput, ProcessingOrder
from commodity_kernel.selectors.base import BaseSelector


class BatchSelector(BaseSelector):

    def get(self, batch_id: UUID | str) -> BatchInfo | None:
        batch = self.session.get(CommodityBatch, coerce_id(batch_id, "batch_id"))
        return batch.to_dto() if batch is not None else None

    def get_by_number(self, batch_number: str) -> BatchInfo | None:
        batch = self.session.execute(
            select(CommodityBatch).where(CommodityBatch.batch_number == batch_number)
        ).scalar_one_or_none()
        return batch.to_dto() if batch is not None else None

    def available(
        self,
        location: str | None = None,
        commodity_code: str | None = None,
    ) -> list[BatchInfo]:
        """Debitable batches with weight left, oldest receipt first."""
        query = select(CommodityBatch).where(
            CommodityBatch.status.in_(DEBITABLE_BATCH_STATUSES),
            CommodityBatch.current_weight > ZERO_WEIGHT,
        )
        if location is not None:
            query = query.where(CommodityBatch.location == location)
        if commodity_code is not None:
            query = query.where(CommodityBatch.commodity_code == commodity_code.strip().upper())
        query = query.order_by(CommodityBatch.received_date, CommodityBatch.batch_number)
        return [b.to_dto() for b in self.session.execute(query).scalars()]

    def stock_positions(self, location: str | None = None) -> list[StockPosition]:
        """Available weight grouped by (location, commodity)."""
        query = (
            select(
                CommodityBatch.location,
                CommodityBatch.commodity_code,
                func.sum(CommodityBatch.current_weight),
                func.count(CommodityBatch.id),
            )
            .where(
                CommodityBatch.status.in_(DEBITABLE_BATCH_STATUSES),
                CommodityBatch.current_weight > ZERO_WEIGHT,
            )
            .group_by(CommodityBatch.location, CommodityBatch.commodity_code)
            .order_by(CommodityBatch.location, CommodityBatch.commodity_code)
        )
        if location is not None:
            query = query.where(CommodityBatch.location == location)
        return [
            StockPosition(
                location=loc,
                commodity_code=code,
                total_weight=total if total is not None else ZERO_WEIGHT,
                batch_count=count,
            )
            for loc, code, total, count in self.session.execute(query)
        ]

    # ------------------------------------------------------------------
    # Lineage
    # ------------------------------------------------------------------

    def ancestors(self, batch_id: UUID | str) -> list[LineageNode]:
        """The batch itself (depth 0) and every batch it was derived from."""
        return self._walk(coerce_id(batch_id, "batch_id"), self._parents_of)

    def descendants(self, batch_id: UUID | str) -> list[LineageNode]:
        """The batch itself (depth 0) and every batch derived from it."""
        return self._walk(coerce_id(batch_id, "batch_id"), self._children_of)

    def _walk(self, start: UUID, neighbours) -> list[LineageNode]:
        root = self.session.get(CommodityBatch, start)
        if root is None:
            return []
        depths = {root.id: 0}
        batches = {root.id: root}
        queue = deque([root])
        while queue:
            batch = queue.popleft()
            for nxt in neighbours(batch):
                if nxt.id not in depths:
                    depths[nxt.id] = depths[batch.id] + 1
                    batches[nxt.id] = nxt
                    queue.append(nxt)
        ordered = sorted(depths, key=lambda i: (depths[i], batches[i].batch_number))
        return [LineageNode(batch=batches[i].to_dto(), depth=depths[i]) for i in ordered]

    def _parents_of(self, batch: CommodityBatch) -> Iterable[CommodityBatch]:
        parent_ids: set[UUID] = set()
        if batch.parent_batch_id is not None:
            parent_ids.add(batch.parent_batch_id)
        if batch.processing_order_id is not None:
            order = self.session.get(ProcessingOrder, batch.processing_order_id)
            if order is not None and order.status == ProcessingOrderStatus.COMPLETED:
                parent_ids.update(line.batch_id for line in order.inputs)
        return self._load(parent_ids)

    def _children_of(self, batch: CommodityBatch) -> Iterable[CommodityBatch]:
        completed_orders = (
            select(ProcessingInput.order_id)
            .join(ProcessingOrder, ProcessingOrder.id == ProcessingInput.order_id)
            .where(
                ProcessingInput.batch_id == batch.id,
                ProcessingOrder.status == ProcessingOrderStatus.COMPLETED,
            )
        )
        query = select(CommodityBatch).where(
            or_(
                CommodityBatch.parent_batch_id == batch.id,
                CommodityBatch.processing_order_id.in_(completed_orders),
            )
        )
        return list(self.session.execute(query).scalars())

    def _load(self, ids: set[UUID]) -> list[CommodityBatch]:
        if not ids:
            return []
        return list(
            self.session.execute(
                select(CommodityBatch).where(CommodityBatch.id.in_(ids))
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Movements and conservation
    # ------------------------------------------------------------------

    def movements(self, batch_id: UUID | str) -> list[MovementInfo]:
        """Every movement in or out of the batch, oldest first."""
        batch_id = coerce_id(batch_id, "batch_id")
        query = (
            select(BatchMovement)
            .where(
                or_(
                    BatchMovement.source_batch_id == batch_id,
                    BatchMovement.destination_batch_id == batch_id,
                )
            )
            .order_by(BatchMovement.moved_at, BatchMovement.reference_number)
        )
        return [m.to_dto() for m in self.session.execute(query).scalars()]

    def transfer_lineage_total(self, batch_id: UUID | str) -> Decimal:
        """
        Current weight of the batch plus every batch reached from it through
        TRANSFER movements, transitively.

        With no processing in the lineage this always equals the batch's
        received weight.
        """
        root_id = coerce_id(batch_id, "batch_id")
        root = self.session.get(CommodityBatch, root_id)
        if root is None:
            return ZERO_WEIGHT
        seen = {root_id}
        frontier = [root_id]
        total = root.current_weight
        while frontier:
            destinations = self.session.execute(
                select(BatchMovement.destination_batch_id).where(
                    BatchMovement.movement_type == MovementType.TRANSFER,
                    BatchMovement.source_batch_id.in_(frontier),
                )
            ).scalars()
            frontier = [d for d in set(destinations) if d is not None and d not in seen]
            seen.update(frontier)
            for batch in self._load(set(frontier)):
                total += batch.current_weight
        return total
