from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from erp.models.accounts_payable import AccountsPayable

AGING_BUCKETS = ("Current", "30 Days", "60 Days", "90+ Days")


class AccountsPayableSummary(BaseModel):
    id: str
    vendor_id: str
    cause_type: str
    cause_reference_number: Optional[str] = None
    status: str
    currency: str
    total_amount: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    due_date: Optional[date] = None
    days_overdue: int
    aging_bucket: str

    @classmethod
    def from_aggregate(
        cls, ap: AccountsPayable, today: Optional[date] = None
    ) -> "AccountsPayableSummary":
        return cls(
            id=str(ap.id),
            vendor_id=str(ap.vendor_id),
            cause_type=ap.cause_type.value,
            cause_reference_number=ap.cause_reference_number,
            status=ap.status.value,
            currency=ap.currency,
            total_amount=ap.total_amount.amount,
            total_paid=ap.total_paid.amount,
            remaining_balance=ap.remaining_balance.amount,
            due_date=ap.due_date,
            days_overdue=ap.days_overdue(today),
            aging_bucket=ap.aging_bucket(today),
        )


class AgingBucketRow(BaseModel):
    bucket: str
    currency: str
    count: int = 0
    total_remaining: Decimal = Decimal("0.00")


class AgingSummary(BaseModel):
    as_of: date
    rows: List[AgingBucketRow] = Field(default_factory=list)

    def row(self, bucket: str, currency: str) -> Optional[AgingBucketRow]:
        for row in self.rows:
            if row.bucket == bucket and row.currency == currency:
                return row
        return None
