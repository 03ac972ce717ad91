"""
Accounts payable service: payments, cancellation and aging reports.

Reports take an explicit ``today`` so callers (and tests) control the
reference date; it defaults to the current local date.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import structlog

from erp.domain.money import Money
from erp.errors import ResourceNotFoundError
from erp.models.accounts_payable import (
    AccountsPayable,
    AccountsPayableStatus,
    VendorPayment,
    VendorPaymentMethod,
)
from erp.repositories import Repository
from erp.schemas.accounts_payable import AGING_BUCKETS, AgingBucketRow, AgingSummary

logger = structlog.get_logger()


class AccountsPayableService:
    def __init__(self, accounts_payables: Repository[AccountsPayable]):
        self.accounts_payables = accounts_payables

    async def get(self, ap_id: uuid.UUID) -> AccountsPayable:
        ap = await self.accounts_payables.find_by_id(ap_id)
        if ap is None:
            raise ResourceNotFoundError.for_id("Accounts payable", ap_id)
        return ap

    async def record_payment(
        self,
        ap_id: uuid.UUID,
        *,
        payment_date: date,
        amount: Money,
        payment_method: VendorPaymentMethod,
        recorded_by_id: uuid.UUID,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> VendorPayment:
        ap = await self.get(ap_id)
        payment = VendorPayment.create(
            payment_date=payment_date,
            amount=amount,
            payment_method=payment_method,
            recorded_by_id=recorded_by_id,
            reference_number=reference_number,
            notes=notes,
        )
        ap.add_payment(payment)
        await self.accounts_payables.save(ap)
        return payment

    async def cancel(self, ap_id: uuid.UUID) -> AccountsPayable:
        ap = await self.get(ap_id)
        ap.cancel()
        return await self.accounts_payables.save(ap)

    async def list_outstanding(self) -> List[AccountsPayable]:
        aps = await self.accounts_payables.list_by()
        return [
            ap
            for ap in aps
            if ap.status in (AccountsPayableStatus.PENDING, AccountsPayableStatus.PARTIALLY_PAID)
        ]

    async def list_overdue(self, today: Optional[date] = None) -> List[AccountsPayable]:
        today = today or date.today()
        overdue = [ap for ap in await self.list_outstanding() if ap.is_overdue(today)]
        return sorted(overdue, key=lambda ap: ap.due_date)

    async def aging_summary(self, today: Optional[date] = None) -> AgingSummary:
        """Count and remaining balance of outstanding payables per bucket and currency."""
        today = today or date.today()
        totals: Dict[Tuple[str, str], Tuple[int, Decimal]] = {}
        for ap in await self.list_outstanding():
            key = (ap.aging_bucket(today), ap.currency)
            count, remaining = totals.get(key, (0, Decimal("0.00")))
            totals[key] = (count + 1, remaining + ap.remaining_balance.amount)

        currencies = sorted({currency for _, currency in totals})
        rows = []
        for currency in currencies:
            for bucket in AGING_BUCKETS:
                count, remaining = totals.get((bucket, currency), (0, Decimal("0.00")))
                rows.append(
                    AgingBucketRow(
                        bucket=bucket,
                        currency=currency,
                        count=count,
                        total_remaining=remaining,
                    )
                )
        logger.info("ap_aging_summary_built", as_of=str(today), payables=sum(c for c, _ in totals.values()))
        return AgingSummary(as_of=today, rows=rows)
