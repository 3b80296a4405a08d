"""
Module: commodity_kernel.selectors.processing_selector
Responsibility: Read access to processing orders.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import or_, select

from commodity_kernel.db.repository import coerce_id
from commodity_kernel.domain.dtos import ProcessingOrderInfo
from commodity_kernel.domain.lifecycles import ProcessingOrderStatus
from commodity_kernel.models.processing import ProcessingInput, ProcessingOrder, ProcessingOutput
from commodity_kernel.selectors.base import BaseSelector


class ProcessingSelector(BaseSelector):

    def get(self, order_id: UUID | str) -> ProcessingOrderInfo | None:
        order = self.session.get(ProcessingOrder, coerce_id(order_id, "order_id"))
        return order.to_dto() if order is not None else None

    def list_orders(self, status: ProcessingOrderStatus | None = None) -> list[ProcessingOrderInfo]:
        query = select(ProcessingOrder)
        if status is not None:
            query = query.where(ProcessingOrder.status == status)
        query = query.order_by(ProcessingOrder.order_number)
        return [o.to_dto() for o in self.session.execute(query).scalars()]

    def orders_for_batch(self, batch_id: UUID | str) -> list[ProcessingOrderInfo]:
        """Orders that drew from or produced the batch."""
        batch_id = coerce_id(batch_id, "batch_id")
        drew = select(ProcessingInput.order_id).where(ProcessingInput.batch_id == batch_id)
        produced = select(ProcessingOutput.order_id).where(ProcessingOutput.batch_id == batch_id)
        query = (
            select(ProcessingOrder)
            .where(or_(ProcessingOrder.id.in_(drew), ProcessingOrder.id.in_(produced)))
            .order_by(ProcessingOrder.order_number)
        )
        return [o.to_dto() for o in self.session.execute(query).scalars()]
