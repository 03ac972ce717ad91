"""
Keeps PurchaseRequest status in step with its PurchaseOrder.

Each handler reloads the request by id, checks its current status, applies
the transition and saves. A status that does not match is treated as
"already handled" and skipped, so redelivered or out-of-order events are
harmless. A missing request is an error and propagates to the caller.

    Created   VENDOR_SELECTED           → ORDERED
    Received  ORDERED                   → CLOSED
    Canceled  VENDOR_SELECTED, ORDERED  → RFQ_SENT (vendor selection reverted)
"""

import structlog

from erp.domain.events import (
    PurchaseOrderCanceledEvent,
    PurchaseOrderCreatedEvent,
    PurchaseOrderReceivedEvent,
)
from erp.errors import ResourceNotFoundError
from erp.models.purchase_request import (
    PurchaseRequest,
    PurchaseRequestStatus,
    RfqItemStatus,
)
from erp.repositories import Repository
from erp.services.event_publisher import DomainEventPublisher

logger = structlog.get_logger()

REVERTIBLE_STATUSES = (
    PurchaseRequestStatus.VENDOR_SELECTED,
    PurchaseRequestStatus.ORDERED,
)


class PurchaseRequestEventHandler:
    def __init__(self, purchase_requests: Repository[PurchaseRequest]):
        self.purchase_requests = purchase_requests

    async def on_purchase_order_created(self, event: PurchaseOrderCreatedEvent) -> None:
        pr = await self._load(event.purchase_request_id)
        if pr.status != PurchaseRequestStatus.VENDOR_SELECTED:
            self._skip(event, pr)
            return
        pr.mark_ordered()
        await self.purchase_requests.save(pr)
        logger.info(
            "purchase_request_marked_ordered",
            purchase_request_id=str(pr.id),
            po_number=event.po_number,
        )

    async def on_purchase_order_received(self, event: PurchaseOrderReceivedEvent) -> None:
        pr = await self._load(event.purchase_request_id)
        if pr.status != PurchaseRequestStatus.ORDERED:
            self._skip(event, pr)
            return
        pr.close()
        await self.purchase_requests.save(pr)
        logger.info(
            "purchase_request_closed",
            purchase_request_id=str(pr.id),
            po_number=event.po_number,
        )

    async def on_purchase_order_canceled(self, event: PurchaseOrderCanceledEvent) -> None:
        pr = await self._load(event.purchase_request_id)
        if pr.status not in REVERTIBLE_STATUSES:
            self._skip(event, pr)
            return
        item = pr.find_rfq_item(event.rfq_item_id)
        if item is not None and item.status != RfqItemStatus.SELECTED:
            # another vendor's order is live; this cancellation is stale
            self._skip(event, pr)
            return
        pr.revert_vendor_selection(event.rfq_item_id)
        await self.purchase_requests.save(pr)
        logger.info(
            "purchase_request_vendor_selection_reverted",
            purchase_request_id=str(pr.id),
            rfq_item_id=event.rfq_item_id,
            po_number=event.po_number,
        )

    async def _load(self, purchase_request_id) -> PurchaseRequest:
        pr = await self.purchase_requests.find_by_id(purchase_request_id)
        if pr is None:
            raise ResourceNotFoundError.for_id("Purchase request", purchase_request_id)
        return pr

    @staticmethod
    def _skip(event, pr: PurchaseRequest) -> None:
        logger.info(
            "purchase_request_event_skipped",
            event_type=event.event_type,
            purchase_request_id=str(pr.id),
            status=pr.status.value,
        )


def register(publisher: DomainEventPublisher, handler: PurchaseRequestEventHandler) -> None:
    publisher.subscribe(PurchaseOrderCreatedEvent, handler.on_purchase_order_created)
    publisher.subscribe(PurchaseOrderReceivedEvent, handler.on_purchase_order_received)
    publisher.subscribe(PurchaseOrderCanceledEvent, handler.on_purchase_order_canceled)
