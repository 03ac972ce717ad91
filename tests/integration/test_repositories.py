"""
SqlAlchemyRepository against a real SQLite database.

Each test writes through one session and reads back through a fresh one, so
what is asserted is what actually went through the column mappings.
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

from erp.models.accounts_payable import AccountsPayableStatus, DisbursementCauseType
from erp.models.purchase_order import PurchaseOrder, PurchaseOrderStatus
from erp.models.purchase_request import PurchaseRequestStatus, RfqItemStatus
from erp.models.quotation import QuotationStatus
from erp.repositories import (
    accounts_payable_repository,
    purchase_order_repository,
    purchase_request_repository,
    quotation_repository,
)
from tests.factories import (
    TODAY,
    krw,
    make_ap,
    make_line,
    make_payment,
    make_quotation,
    make_vendor_selected_pr,
)


@pytest.mark.asyncio
async def test_accounts_payable_with_payments_round_trip(session_factory):
    ap = make_ap(total="1000.50", due_date=TODAY + timedelta(days=30))
    ap.add_payment(make_payment(300))
    ap.add_payment(make_payment("200.25"))

    async with session_factory() as session:
        await accounts_payable_repository(session).save(ap)
        await session.commit()

    async with session_factory() as session:
        loaded = await accounts_payable_repository(session).find_by_id(ap.id)

    assert loaded is not ap
    assert loaded.status == AccountsPayableStatus.PARTIALLY_PAID
    assert loaded.cause_type == DisbursementCauseType.PURCHASE_ORDER
    assert loaded.total_amount == krw("1000.50")
    assert [p.amount for p in loaded.payments] == [krw(300), krw("200.25")]
    assert [p.sequence for p in loaded.payments] == [1, 2]
    assert loaded.remaining_balance == krw("500.25")
    assert {p.accounts_payable_id for p in loaded.payments} == {ap.id}


@pytest.mark.asyncio
async def test_payment_on_reloaded_payable_is_persisted(session_factory):
    ap = make_ap(total=1000)
    async with session_factory() as session:
        await accounts_payable_repository(session).save(ap)
        await session.commit()

    async with session_factory() as session:
        repo = accounts_payable_repository(session)
        loaded = await repo.find_by_id(ap.id)
        loaded.add_payment(make_payment(1000))
        await repo.save(loaded)
        await session.commit()

    async with session_factory() as session:
        reloaded = await accounts_payable_repository(session).find_by_id(ap.id)

    assert reloaded.status == AccountsPayableStatus.PAID
    assert reloaded.is_fully_paid()
    assert reloaded.version == 2


@pytest.mark.asyncio
async def test_payment_on_loaded_payable_is_flushed_without_save(session_factory):
    ap = make_ap(total=1000)
    async with session_factory() as session:
        await accounts_payable_repository(session).save(ap)
        await session.commit()

    async with session_factory() as session:
        loaded = await accounts_payable_repository(session).find_by_id(ap.id)
        loaded.add_payment(make_payment(600))
        await session.commit()

    async with session_factory() as session:
        reloaded = await accounts_payable_repository(session).find_by_id(ap.id)

    assert reloaded.status == AccountsPayableStatus.PARTIALLY_PAID
    assert [p.amount for p in reloaded.payments] == [krw(600)]
    assert reloaded.payments[0].sequence == 1
    assert reloaded.remaining_balance == krw(400)


@pytest.mark.asyncio
async def test_concurrent_payments_are_rejected_by_version_check(session_factory):
    ap = make_ap(total=1000)
    async with session_factory() as session:
        await accounts_payable_repository(session).save(ap)
        await session.commit()

    first = session_factory()
    second = session_factory()
    try:
        mine = await accounts_payable_repository(first).find_by_id(ap.id)
        theirs = await accounts_payable_repository(second).find_by_id(ap.id)

        theirs.add_payment(make_payment(600))
        await second.commit()

        mine.add_payment(make_payment(600))
        with pytest.raises(StaleDataError):
            await first.commit()
    finally:
        await first.close()
        await second.close()

    async with session_factory() as session:
        reloaded = await accounts_payable_repository(session).find_by_id(ap.id)
    assert reloaded.remaining_balance == krw(400)


@pytest.mark.asyncio
async def test_purchase_request_with_rfq_items_round_trip(session_factory):
    pr, (selected, other) = make_vendor_selected_pr(vendors=2)

    async with session_factory() as session:
        await purchase_request_repository(session).save(pr)
        await session.commit()

    async with session_factory() as session:
        loaded = await purchase_request_repository(session).find_by_id(pr.id)

    assert loaded.status == PurchaseRequestStatus.VENDOR_SELECTED
    assert loaded.request_number == "PR-2025-000001"
    assert [i.item_id for i in loaded.rfq_items] == [selected.item_id, other.item_id]
    assert loaded.selected_rfq_item.item_id == selected.item_id
    assert loaded.selected_rfq_item.quoted_price == krw(1000)
    assert loaded.find_rfq_item(other.item_id).status == RfqItemStatus.REJECTED


@pytest.mark.asyncio
async def test_reverted_selection_survives_reload(session_factory):
    pr, (selected, other) = make_vendor_selected_pr(vendors=2)
    pr.mark_ordered()
    async with session_factory() as session:
        await purchase_request_repository(session).save(pr)
        await session.commit()

    async with session_factory() as session:
        repo = purchase_request_repository(session)
        loaded = await repo.find_by_id(pr.id)
        loaded.revert_vendor_selection(selected.item_id)
        await repo.save(loaded)
        await session.commit()

    async with session_factory() as session:
        reloaded = await purchase_request_repository(session).find_by_id(pr.id)

    assert reloaded.status == PurchaseRequestStatus.RFQ_SENT
    assert {i.status for i in reloaded.rfq_items} == {RfqItemStatus.REPLIED}
    assert reloaded.selected_rfq_item is None


@pytest.mark.asyncio
async def test_purchase_orders_listed_by_rfq_item(session_factory):
    pr, (item, _) = make_vendor_selected_pr()
    po = PurchaseOrder.create(
        purchase_request_id=pr.id,
        rfq_item_id=item.item_id,
        vendor_id=item.vendor_id,
        po_number="PO-2025-000001",
        order_date=TODAY,
        expected_delivery_date=TODAY + timedelta(days=7),
        total_amount=item.quoted_price,
        created_by_id=uuid.uuid4(),
    )
    po.send()

    async with session_factory() as session:
        await purchase_order_repository(session).save(po)
        await session.commit()

    async with session_factory() as session:
        repo = purchase_order_repository(session)
        found = await repo.list_by(rfq_item_id=item.item_id)
        missing = await repo.list_by(rfq_item_id=str(uuid.uuid4()))

    assert [p.id for p in found] == [po.id]
    assert found[0].status == PurchaseOrderStatus.SENT
    assert found[0].total_amount == krw(1000)
    assert missing == []


@pytest.mark.asyncio
async def test_quotation_with_line_items_round_trip(session_factory):
    quotation = make_quotation(make_line("2", "500"), make_line("1.5", "1000"))
    quotation.submit()

    async with session_factory() as session:
        await quotation_repository(session).save(quotation)
        await session.commit()

    async with session_factory() as session:
        loaded = await quotation_repository(session).find_by_id(quotation.id)

    assert loaded.status == QuotationStatus.PENDING
    assert [item.line_total for item in loaded.line_items] == [krw(1000), krw(1500)]
    assert loaded.total_amount == krw(2500)
    assert loaded.expiry_date == TODAY + timedelta(days=loaded.validity_days)
