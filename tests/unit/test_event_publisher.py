"""
Unit tests for erp/services/event_publisher.py

Tests: queue-then-dispatch, ordering, per-type routing, failure keeps the
       queue for redelivery.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from erp.domain.events import (
    PurchaseOrderCreatedEvent,
    PurchaseOrderReceivedEvent,
    QuotationAcceptedEvent,
)
from erp.services.event_publisher import DomainEventPublisher


def _created(po_number="PO-2025-000001"):
    return PurchaseOrderCreatedEvent(
        purchase_order_id=uuid.uuid4(), purchase_request_id=uuid.uuid4(), po_number=po_number
    )


def _received():
    return PurchaseOrderReceivedEvent(
        purchase_order_id=uuid.uuid4(), purchase_request_id=uuid.uuid4(), po_number="PO-2025-000001"
    )


@pytest.mark.asyncio
async def test_publish_only_queues():
    publisher = DomainEventPublisher()
    handler = AsyncMock()
    publisher.subscribe(PurchaseOrderCreatedEvent, handler)

    event = _created()
    publisher.publish(event)

    handler.assert_not_awaited()
    assert publisher.pending == [event]


@pytest.mark.asyncio
async def test_dispatch_delivers_in_order_by_type():
    publisher = DomainEventPublisher()
    seen = []

    async def on_created(event):
        seen.append(("created", event.po_number))

    async def on_received(event):
        seen.append(("received", event.po_number))

    publisher.subscribe(PurchaseOrderCreatedEvent, on_created)
    publisher.subscribe(PurchaseOrderReceivedEvent, on_received)

    publisher.publish(_created("PO-1"))
    publisher.publish(_received())
    publisher.publish(_created("PO-2"))

    delivered = await publisher.dispatch_pending()

    assert delivered == 3
    assert seen == [("created", "PO-1"), ("received", "PO-2025-000001"), ("created", "PO-2")]
    assert publisher.pending == []


@pytest.mark.asyncio
async def test_multiple_subscribers_each_receive_event():
    publisher = DomainEventPublisher()
    first, second = AsyncMock(), AsyncMock()
    publisher.subscribe(PurchaseOrderCreatedEvent, first)
    publisher.subscribe(PurchaseOrderCreatedEvent, second)

    event = _created()
    publisher.publish(event)
    await publisher.dispatch_pending()

    first.assert_awaited_once_with(event)
    second.assert_awaited_once_with(event)


@pytest.mark.asyncio
async def test_event_without_subscribers_is_dropped():
    publisher = DomainEventPublisher()
    publisher.publish(
        QuotationAcceptedEvent(
            quotation_id=uuid.uuid4(), project_id=uuid.uuid4(), accepted_by_id=uuid.uuid4()
        )
    )
    assert await publisher.dispatch_pending() == 1
    assert publisher.pending == []


@pytest.mark.asyncio
async def test_handler_failure_propagates_and_keeps_queue():
    publisher = DomainEventPublisher()
    failing = AsyncMock(side_effect=RuntimeError("db down"))
    publisher.subscribe(PurchaseOrderCreatedEvent, failing)

    first, second = _created("PO-1"), _created("PO-2")
    publisher.publish(first)
    publisher.publish(second)

    with pytest.raises(RuntimeError, match="db down"):
        await publisher.dispatch_pending()
    assert publisher.pending == [first, second]

    failing.side_effect = None
    assert await publisher.dispatch_pending() == 2
    assert publisher.pending == []


def test_clear_drops_pending():
    publisher = DomainEventPublisher()
    publisher.publish(_created())
    publisher.clear()
    assert publisher.pending == []
