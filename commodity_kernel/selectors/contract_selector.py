"""
Module: commodity_kernel.selectors.contract_selector
Responsibility: Read access to purchase contracts and their fulfilment.
Architecture position: Kernel > Selectors.

Fulfilment is reported, never acted on: a fully delivered contract stays
ACTIVE until someone moves it to COMPLETED.
"""

from uuid import UUID

from sqlalchemy import select

from commodity_kernel.db.repository import coerce_id
from commodity_kernel.domain.dtos import ContractInfo, FulfillmentSummary, ItemFulfillment
from commodity_kernel.domain.lifecycles import ContractStatus
from commodity_kernel.models.contract import PurchaseContract
from commodity_kernel.selectors.base import BaseSelector


class ContractSelector(BaseSelector):

    def get(self, contract_id: UUID | str) -> ContractInfo | None:
        contract = self.session.get(PurchaseContract, coerce_id(contract_id, "contract_id"))
        return contract.to_dto() if contract is not None else None

    def list_contracts(
        self,
        status: ContractStatus | None = None,
        supplier_ref: str | None = None,
    ) -> list[ContractInfo]:
        query = select(PurchaseContract)
        if status is not None:
            query = query.where(PurchaseContract.status == status)
        if supplier_ref is not None:
            query = query.where(PurchaseContract.supplier_ref == supplier_ref)
        query = query.order_by(PurchaseContract.contract_number)
        return [c.to_dto() for c in self.session.execute(query).scalars()]

    def fulfillment(self, contract_id: UUID | str) -> FulfillmentSummary | None:
        """Per-item contracted / delivered / remaining for one contract."""
        contract = self.session.get(PurchaseContract, coerce_id(contract_id, "contract_id"))
        if contract is None:
            return None
        return FulfillmentSummary(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            status=contract.status,
            items=tuple(
                ItemFulfillment(
                    contract_item_id=item.id,
                    commodity_code=item.commodity_code,
                    contracted=item.contracted_quantity,
                    delivered=item.delivered_quantity,
                )
                for item in contract.items
            ),
        )
