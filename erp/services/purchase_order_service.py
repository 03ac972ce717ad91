"""
Purchase order service: orders placed from a selected RFQ line.

Commands save the order first and then queue the matching PurchaseOrder*Event
on the publisher. Delivery to PurchaseRequestEventHandler happens when the
owner of the unit of work calls ``publisher.dispatch_pending()`` after commit;
nothing here touches the request's status directly except the vendor pick
made while creating an order from a REPLIED line.
"""

import uuid
from datetime import date
from typing import Optional, Tuple

import structlog

from erp.config import settings
from erp.domain.money import Money
from erp.errors import DuplicateResourceError, InvalidStateError, ResourceNotFoundError
from erp.models.accounts_payable import AccountsPayable
from erp.models.purchase_order import PurchaseOrder, PurchaseOrderStatus
from erp.models.purchase_request import PurchaseRequest, PurchaseRequestStatus, RfqItemStatus
from erp.repositories import Repository
from erp.services.event_publisher import DomainEventPublisher
from erp.services.numbering import PURCHASE_ORDER_PREFIX, next_document_number

logger = structlog.get_logger()


class PurchaseOrderService:
    def __init__(
        self,
        purchase_orders: Repository[PurchaseOrder],
        purchase_requests: Repository[PurchaseRequest],
        accounts_payables: Repository[AccountsPayable],
        publisher: DomainEventPublisher,
    ):
        self.purchase_orders = purchase_orders
        self.purchase_requests = purchase_requests
        self.accounts_payables = accounts_payables
        self.publisher = publisher

    async def get(self, purchase_order_id: uuid.UUID) -> PurchaseOrder:
        po = await self.purchase_orders.find_by_id(purchase_order_id)
        if po is None:
            raise ResourceNotFoundError.for_id("Purchase order", purchase_order_id)
        return po

    async def create_from_rfq(
        self,
        *,
        purchase_request_id: uuid.UUID,
        rfq_item_id: str,
        order_date: date,
        expected_delivery_date: date,
        created_by_id: uuid.UUID,
        total_amount: Optional[Money] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        """
        Create a DRAFT order for one vendor's RFQ line.

        A REPLIED line is selected on the request first. The amount defaults
        to the vendor's quoted price. Only one live order may exist per line.
        """
        pr = await self.purchase_requests.find_by_id(purchase_request_id)
        if pr is None:
            raise ResourceNotFoundError.for_id("Purchase request", purchase_request_id)
        item = pr.find_rfq_item(rfq_item_id)
        if item is None:
            raise ResourceNotFoundError.for_id("RFQ item", rfq_item_id)

        existing = await self.purchase_orders.list_by(rfq_item_id=str(rfq_item_id))
        live = [po for po in existing if po.status != PurchaseOrderStatus.CANCELLED]
        if live:
            raise DuplicateResourceError(
                f"Purchase order {live[0].po_number} already exists for RFQ item {rfq_item_id}"
            )

        if item.status == RfqItemStatus.REPLIED:
            required = PurchaseRequestStatus.RFQ_SENT
        elif item.status == RfqItemStatus.SELECTED:
            required = PurchaseRequestStatus.VENDOR_SELECTED
        else:
            raise InvalidStateError(
                f"Cannot create purchase order for RFQ item in {item.status.value} status"
            )
        if pr.status != required:
            raise InvalidStateError(
                f"Cannot create purchase order for purchase request in {pr.status.value} status"
            )

        # Built before the request changes so a rejected order leaves it untouched.
        issued = [po.po_number for po in await self.purchase_orders.list_by()]
        amount = total_amount if total_amount is not None else item.quoted_price
        po = PurchaseOrder.create(
            purchase_request_id=pr.id,
            rfq_item_id=item.item_id,
            vendor_id=item.vendor_id,
            project_id=pr.project_id,
            po_number=next_document_number(PURCHASE_ORDER_PREFIX, issued, order_date),
            order_date=order_date,
            expected_delivery_date=expected_delivery_date,
            total_amount=amount,
            created_by_id=created_by_id,
            notes=notes,
        )

        if item.status == RfqItemStatus.REPLIED:
            pr.select_vendor(item.item_id)
            await self.purchase_requests.save(pr)
        await self.purchase_orders.save(po)
        self.publisher.publish(po.created_event())
        logger.info(
            "purchase_order_created",
            purchase_order_id=str(po.id),
            po_number=po.po_number,
            purchase_request_id=str(pr.id),
            amount=str(po.total_amount.amount),
        )
        return po

    async def update(
        self,
        purchase_order_id: uuid.UUID,
        *,
        expected_delivery_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        po = await self.get(purchase_order_id)
        po.update(expected_delivery_date=expected_delivery_date, notes=notes)
        return await self.purchase_orders.save(po)

    async def send(self, purchase_order_id: uuid.UUID) -> PurchaseOrder:
        po = await self.get(purchase_order_id)
        po.send()
        return await self.purchase_orders.save(po)

    async def confirm(self, purchase_order_id: uuid.UUID) -> PurchaseOrder:
        po = await self.get(purchase_order_id)
        po.confirm()
        return await self.purchase_orders.save(po)

    async def receive(
        self, purchase_order_id: uuid.UUID
    ) -> Tuple[PurchaseOrder, AccountsPayable]:
        """Mark goods received and open the vendor payable for the order."""
        po = await self.get(purchase_order_id)
        po.receive()
        await self.purchase_orders.save(po)

        ap = AccountsPayable.for_purchase_order(po, settings.AP_DEFAULT_DUE_DAYS)
        await self.accounts_payables.save(ap)

        self.publisher.publish(po.received_event())
        logger.info(
            "purchase_order_received",
            purchase_order_id=str(po.id),
            po_number=po.po_number,
            ap_id=str(ap.id),
            due_date=str(ap.due_date),
        )
        return po, ap

    async def cancel(self, purchase_order_id: uuid.UUID) -> PurchaseOrder:
        po = await self.get(purchase_order_id)
        po.cancel()
        await self.purchase_orders.save(po)
        self.publisher.publish(po.canceled_event())
        logger.info(
            "purchase_order_cancelled",
            purchase_order_id=str(po.id),
            po_number=po.po_number,
        )
        return po
