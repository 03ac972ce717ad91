"""
Purchase request service: requisitions and their RFQ round.

Every command loads the request, applies one aggregate method and saves it.
Unknown ids raise ResourceNotFoundError; wrong-state commands surface the
aggregate's InvalidStateError unchanged.
"""

import uuid
from datetime import date
from typing import Iterable, Optional

import structlog

from erp.domain.money import Money, Quantity
from erp.errors import ResourceNotFoundError
from erp.models.purchase_request import PurchaseNeedType, PurchaseRequest, RfqItem
from erp.repositories import Repository
from erp.services.numbering import PURCHASE_REQUEST_PREFIX, next_document_number

logger = structlog.get_logger()


class PurchaseRequestService:
    def __init__(self, purchase_requests: Repository[PurchaseRequest]):
        self.purchase_requests = purchase_requests

    async def get(self, purchase_request_id: uuid.UUID) -> PurchaseRequest:
        pr = await self.purchase_requests.find_by_id(purchase_request_id)
        if pr is None:
            raise ResourceNotFoundError.for_id("Purchase request", purchase_request_id)
        return pr

    async def create_service_request(
        self,
        *,
        service_category_id: uuid.UUID,
        description: str,
        quantity: Quantity,
        required_date: date,
        created_by_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
        uom: Optional[str] = None,
    ) -> PurchaseRequest:
        return await self._create(
            PurchaseNeedType.SERVICE,
            service_category_id,
            description=description,
            quantity=quantity,
            required_date=required_date,
            created_by_id=created_by_id,
            project_id=project_id,
            uom=uom,
        )

    async def create_material_request(
        self,
        *,
        material_id: uuid.UUID,
        description: str,
        quantity: Quantity,
        required_date: date,
        created_by_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
        uom: Optional[str] = None,
    ) -> PurchaseRequest:
        return await self._create(
            PurchaseNeedType.MATERIAL,
            material_id,
            description=description,
            quantity=quantity,
            required_date=required_date,
            created_by_id=created_by_id,
            project_id=project_id,
            uom=uom,
        )

    async def update(
        self,
        purchase_request_id: uuid.UUID,
        *,
        description: Optional[str] = None,
        quantity: Optional[Quantity] = None,
        uom: Optional[str] = None,
        required_date: Optional[date] = None,
    ) -> PurchaseRequest:
        pr = await self.get(purchase_request_id)
        pr.update(
            description=description,
            quantity=quantity,
            uom=uom,
            required_date=required_date,
        )
        return await self.purchase_requests.save(pr)

    async def send_rfq(
        self, purchase_request_id: uuid.UUID, vendor_ids: Iterable[uuid.UUID]
    ) -> PurchaseRequest:
        """Invite vendors and move the request to RFQ_SENT."""
        pr = await self.get(purchase_request_id)
        added = pr.invite_vendors(vendor_ids)
        pr.send_rfq()
        await self.purchase_requests.save(pr)
        logger.info(
            "rfq_sent",
            purchase_request_id=str(pr.id),
            vendors=len(added),
            total_vendors=len(pr.rfq_items),
        )
        return pr

    async def record_rfq_reply(
        self,
        purchase_request_id: uuid.UUID,
        item_id: str,
        quoted_price: Money,
        lead_time_days: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> RfqItem:
        pr = await self.get(purchase_request_id)
        item = pr.record_rfq_reply(item_id, quoted_price, lead_time_days, notes)
        await self.purchase_requests.save(pr)
        return item

    async def mark_rfq_no_response(self, purchase_request_id: uuid.UUID, item_id: str) -> RfqItem:
        pr = await self.get(purchase_request_id)
        item = pr.mark_rfq_no_response(item_id)
        await self.purchase_requests.save(pr)
        return item

    async def reject_rfq(self, purchase_request_id: uuid.UUID, item_id: str) -> RfqItem:
        pr = await self.get(purchase_request_id)
        item = pr.reject_rfq(item_id)
        await self.purchase_requests.save(pr)
        return item

    async def select_vendor(self, purchase_request_id: uuid.UUID, item_id: str) -> PurchaseRequest:
        pr = await self.get(purchase_request_id)
        pr.select_vendor(item_id)
        return await self.purchase_requests.save(pr)

    async def cancel(self, purchase_request_id: uuid.UUID) -> PurchaseRequest:
        pr = await self.get(purchase_request_id)
        pr.cancel()
        return await self.purchase_requests.save(pr)

    async def _create(
        self, need_type: PurchaseNeedType, need_id: uuid.UUID, **fields
    ) -> PurchaseRequest:
        existing = await self.purchase_requests.list_by()
        request_number = next_document_number(
            PURCHASE_REQUEST_PREFIX, [request.request_number for request in existing]
        )
        pr = PurchaseRequest.create(
            need_type=need_type,
            need_id=need_id,
            request_number=request_number,
            **fields,
        )
        await self.purchase_requests.save(pr)
        logger.info(
            "purchase_request_created",
            purchase_request_id=str(pr.id),
            request_number=request_number,
            need_type=need_type.value,
        )
        return pr
