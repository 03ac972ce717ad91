"""
Unit tests for erp/services/purchase_order_service.py

In-memory repositories plus a real DomainEventPublisher; the request-side
reaction is exercised by dispatching to PurchaseRequestEventHandler.
"""

import uuid
from datetime import date, timedelta

import pytest

from erp.config import settings
from erp.domain.events import (
    PurchaseOrderCanceledEvent,
    PurchaseOrderCreatedEvent,
    PurchaseOrderReceivedEvent,
)
from erp.errors import (
    DuplicateResourceError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from erp.models.accounts_payable import AccountsPayableStatus, DisbursementCauseType
from erp.models.purchase_order import PurchaseOrderStatus
from erp.models.purchase_request import PurchaseRequestStatus, RfqItemStatus
from erp.repositories import InMemoryRepository
from erp.services.event_publisher import DomainEventPublisher
from erp.services.purchase_order_service import PurchaseOrderService
from erp.services.purchase_request_event_handler import PurchaseRequestEventHandler, register
from tests.factories import krw, make_pr

ORDER_DATE = date(2025, 6, 2)


def _setup(pr):
    purchase_requests = InMemoryRepository(pr)
    purchase_orders = InMemoryRepository()
    accounts_payables = InMemoryRepository()
    publisher = DomainEventPublisher()
    register(publisher, PurchaseRequestEventHandler(purchase_requests))
    service = PurchaseOrderService(purchase_orders, purchase_requests, accounts_payables, publisher)
    return service, publisher, accounts_payables


def _replied_pr(vendors=2):
    pr = make_pr()
    items = [pr.add_rfq_item(uuid.uuid4()) for _ in range(vendors)]
    pr.send_rfq()
    for i, item in enumerate(items):
        pr.record_rfq_reply(item.item_id, krw(1000 + 100 * i))
    return pr, items


async def _create_po(service, pr, item, **overrides):
    fields = dict(
        purchase_request_id=pr.id,
        rfq_item_id=item.item_id,
        order_date=ORDER_DATE,
        expected_delivery_date=ORDER_DATE + timedelta(days=14),
        created_by_id=uuid.uuid4(),
    )
    fields.update(overrides)
    return await service.create_from_rfq(**fields)


@pytest.mark.asyncio
async def test_create_from_replied_item_selects_vendor_and_queues_event():
    pr, (item, other) = _replied_pr()
    service, publisher, _ = _setup(pr)

    po = await _create_po(service, pr, item)

    assert po.status == PurchaseOrderStatus.DRAFT
    assert po.vendor_id == item.vendor_id
    assert po.total_amount == krw(1000)
    assert po.po_number == "PO-2025-000001"
    assert pr.status == PurchaseRequestStatus.VENDOR_SELECTED
    assert item.status == RfqItemStatus.SELECTED
    assert other.status == RfqItemStatus.REJECTED
    assert [type(e) for e in publisher.pending] == [PurchaseOrderCreatedEvent]


@pytest.mark.asyncio
async def test_created_event_marks_request_ordered_after_dispatch():
    pr, (item, _) = _replied_pr()
    service, publisher, _ = _setup(pr)

    await _create_po(service, pr, item)
    assert pr.status == PurchaseRequestStatus.VENDOR_SELECTED

    await publisher.dispatch_pending()
    assert pr.status == PurchaseRequestStatus.ORDERED


@pytest.mark.asyncio
async def test_explicit_amount_overrides_quote():
    pr, (item, _) = _replied_pr()
    service, _, _ = _setup(pr)
    po = await _create_po(service, pr, item, total_amount=krw(950))
    assert po.total_amount == krw(950)


@pytest.mark.asyncio
async def test_second_live_order_for_same_item_rejected():
    pr, (item, _) = _replied_pr()
    service, _, _ = _setup(pr)
    await _create_po(service, pr, item)

    with pytest.raises(DuplicateResourceError, match="already exists"):
        await _create_po(service, pr, item)


@pytest.mark.asyncio
async def test_order_for_unreplied_item_rejected():
    pr = make_pr()
    item = pr.add_rfq_item(uuid.uuid4())
    pr.send_rfq()
    service, publisher, _ = _setup(pr)

    with pytest.raises(InvalidStateError, match="SENT"):
        await _create_po(service, pr, item)
    assert publisher.pending == []


@pytest.mark.asyncio
async def test_rejected_order_leaves_request_unselected():
    pr, (item, other) = _replied_pr()
    service, publisher, _ = _setup(pr)

    with pytest.raises(ValidationError, match="delivery date"):
        await _create_po(
            service, pr, item, expected_delivery_date=ORDER_DATE - timedelta(days=1)
        )
    with pytest.raises(ValidationError, match="positive"):
        await _create_po(service, pr, item, total_amount=krw(0))

    assert pr.status == PurchaseRequestStatus.RFQ_SENT
    assert item.status == RfqItemStatus.REPLIED
    assert other.status == RfqItemStatus.REPLIED
    assert len(service.purchase_orders) == 0
    assert publisher.pending == []


@pytest.mark.asyncio
async def test_order_for_unknown_request_or_item():
    pr, _ = _replied_pr()
    service, _, _ = _setup(pr)
    with pytest.raises(ResourceNotFoundError, match="Purchase request"):
        await service.create_from_rfq(
            purchase_request_id=uuid.uuid4(),
            rfq_item_id="x",
            order_date=ORDER_DATE,
            expected_delivery_date=ORDER_DATE,
            created_by_id=uuid.uuid4(),
        )
    with pytest.raises(ResourceNotFoundError, match="RFQ item"):
        await service.create_from_rfq(
            purchase_request_id=pr.id,
            rfq_item_id="x",
            order_date=ORDER_DATE,
            expected_delivery_date=ORDER_DATE,
            created_by_id=uuid.uuid4(),
        )


@pytest.mark.asyncio
async def test_receive_opens_payable_and_closes_request():
    pr, (item, _) = _replied_pr()
    service, publisher, accounts_payables = _setup(pr)
    po = await _create_po(service, pr, item)
    await publisher.dispatch_pending()

    await service.send(po.id)
    await service.confirm(po.id)
    po, ap = await service.receive(po.id)

    assert po.status == PurchaseOrderStatus.RECEIVED
    assert ap.status == AccountsPayableStatus.PENDING
    assert ap.total_amount == po.total_amount
    assert ap.cause_type == DisbursementCauseType.PURCHASE_ORDER
    assert ap.cause_id == po.id
    assert ap.due_date == ORDER_DATE + timedelta(days=settings.AP_DEFAULT_DUE_DAYS)
    assert await accounts_payables.find_by_id(ap.id) is ap
    assert [type(e) for e in publisher.pending] == [PurchaseOrderReceivedEvent]

    await publisher.dispatch_pending()
    assert pr.status == PurchaseRequestStatus.CLOSED


@pytest.mark.asyncio
async def test_receive_unconfirmed_order_creates_no_payable():
    pr, (item, _) = _replied_pr()
    service, publisher, accounts_payables = _setup(pr)
    po = await _create_po(service, pr, item)
    await publisher.dispatch_pending()

    with pytest.raises(InvalidStateError):
        await service.receive(po.id)
    assert len(accounts_payables) == 0
    assert publisher.pending == []


@pytest.mark.asyncio
async def test_cancel_reverts_request_and_allows_new_order():
    pr, (item, other) = _replied_pr()
    service, publisher, _ = _setup(pr)
    po = await _create_po(service, pr, item)
    await publisher.dispatch_pending()
    assert pr.status == PurchaseRequestStatus.ORDERED

    await service.cancel(po.id)
    assert [type(e) for e in publisher.pending] == [PurchaseOrderCanceledEvent]
    await publisher.dispatch_pending()

    assert pr.status == PurchaseRequestStatus.RFQ_SENT
    assert item.status == RfqItemStatus.REPLIED
    assert other.status == RfqItemStatus.REPLIED

    replacement = await _create_po(service, pr, other)
    await publisher.dispatch_pending()
    assert replacement.vendor_id == other.vendor_id
    assert replacement.po_number == "PO-2025-000002"
    assert pr.status == PurchaseRequestStatus.ORDERED


@pytest.mark.asyncio
async def test_update_only_while_draft():
    pr, (item, _) = _replied_pr()
    service, _, _ = _setup(pr)
    po = await _create_po(service, pr, item)

    await service.update(po.id, notes="deliver to dock 3")
    assert po.notes == "deliver to dock 3"

    await service.send(po.id)
    with pytest.raises(InvalidStateError):
        await service.update(po.id, notes="too late")


@pytest.mark.asyncio
async def test_unknown_order_raises_not_found():
    service, _, _ = _setup(make_pr())
    with pytest.raises(ResourceNotFoundError, match="Purchase order not found"):
        await service.send(uuid.uuid4())
