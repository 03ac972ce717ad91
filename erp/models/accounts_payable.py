"""
Accounts payable: payment obligations to vendors and the payments made
against them.

An AccountsPayable is created when a disbursement cause (normally a received
purchase order) is confirmed. It owns an insertion-ordered ledger of
VendorPayments and is never deleted: it ends PAID or CANCELLED.

    PENDING ──add_payment──▶ PARTIALLY_PAID ──add_payment──▶ PAID
       │                          ▲      │
       │                          └──────┘
       └──cancel (no payments)──▶ CANCELLED
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Tuple

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Date,
    DateTime,
    Text,
    Uuid,
    Enum as SAEnum,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import structlog

from erp.config import settings
from erp.database import Base
from erp.domain.money import Money, require_positive
from erp.errors import (
    InvalidStateError,
    PaymentExceedsBalanceError,
    PaymentNotAllowedError,
    ValidationError,
)

if TYPE_CHECKING:
    from erp.models.purchase_order import PurchaseOrder

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountsPayableStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    def can_receive_payment(self) -> bool:
        return self in (AccountsPayableStatus.PENDING, AccountsPayableStatus.PARTIALLY_PAID)


class DisbursementCauseType(str, enum.Enum):
    PURCHASE_ORDER = "PURCHASE_ORDER"
    EXPENSE_REPORT = "EXPENSE_REPORT"
    SERVICE_CONTRACT = "SERVICE_CONTRACT"
    OTHER = "OTHER"


class VendorPaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CASH = "CASH"
    PROMISSORY_NOTE = "PROMISSORY_NOTE"
    OTHER = "OTHER"


@dataclass(frozen=True)
class DisbursementCause:
    """Weak reference to whatever created the obligation: type + id + display number."""

    cause_type: DisbursementCauseType
    cause_id: uuid.UUID
    cause_reference_number: Optional[str] = None

    def __post_init__(self) -> None:
        if self.cause_type is None:
            raise ValidationError("Disbursement cause type is required")
        if self.cause_id is None:
            raise ValidationError("Disbursement cause id is required")
        object.__setattr__(self, "cause_type", DisbursementCauseType(self.cause_type))

    @classmethod
    def purchase_order(cls, purchase_order_id: uuid.UUID, po_number: str) -> "DisbursementCause":
        return cls(DisbursementCauseType.PURCHASE_ORDER, purchase_order_id, po_number)


class AccountsPayable(Base):
    __tablename__ = "accounts_payable"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    cause_type: Mapped[DisbursementCauseType] = mapped_column(
        SAEnum(DisbursementCauseType, native_enum=False, length=30), nullable=False
    )
    cause_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    cause_reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    vendor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    _total_amount: Mapped[Decimal] = mapped_column(
        "total_amount", Numeric(15, 2), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[AccountsPayableStatus] = mapped_column(
        SAEnum(AccountsPayableStatus, native_enum=False, length=20), nullable=False
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    _payments: Mapped[List["VendorPayment"]] = relationship(
        back_populates="_accounts_payable",
        cascade="all, delete-orphan",
        order_by="VendorPayment.sequence",
    )

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="chk_ap_total_amount"),
        Index("idx_ap_vendor", "vendor_id"),
        Index("idx_ap_status", "status"),
        Index("idx_ap_cause", "cause_type", "cause_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    # ---------- factories ----------

    @classmethod
    def create(
        cls,
        *,
        disbursement_cause: DisbursementCause,
        vendor_id: uuid.UUID,
        total_amount: Money,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> "AccountsPayable":
        if disbursement_cause is None:
            raise ValidationError("Disbursement cause is required")
        if vendor_id is None:
            raise ValidationError("Vendor is required")
        if total_amount is None:
            raise ValidationError("Total amount is required")
        require_positive(total_amount, "Total amount")

        now = _utcnow()
        return cls(
            id=uuid.uuid4(),
            cause_type=disbursement_cause.cause_type,
            cause_id=disbursement_cause.cause_id,
            cause_reference_number=disbursement_cause.cause_reference_number,
            vendor_id=vendor_id,
            _total_amount=total_amount.amount,
            currency=total_amount.currency,
            status=AccountsPayableStatus.PENDING,
            due_date=due_date,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def for_purchase_order(
        cls, purchase_order: "PurchaseOrder", due_days: Optional[int] = None
    ) -> "AccountsPayable":
        if due_days is None:
            due_days = settings.AP_DEFAULT_DUE_DAYS
        return cls.create(
            disbursement_cause=DisbursementCause.purchase_order(
                purchase_order.id, purchase_order.po_number
            ),
            vendor_id=purchase_order.vendor_id,
            total_amount=purchase_order.total_amount,
            due_date=purchase_order.order_date + timedelta(days=due_days),
        )

    # ---------- read side ----------

    @property
    def payments(self) -> Tuple["VendorPayment", ...]:
        return tuple(self._payments)

    @property
    def disbursement_cause(self) -> DisbursementCause:
        return DisbursementCause(self.cause_type, self.cause_id, self.cause_reference_number)

    @property
    def total_amount(self) -> Money:
        return Money(self._total_amount, self.currency)

    @property
    def total_paid(self) -> Money:
        return Money.sum((p.amount for p in self._payments), self.currency)

    @property
    def remaining_balance(self) -> Money:
        return self.total_amount - self.total_paid

    def is_fully_paid(self) -> bool:
        return self.remaining_balance.is_zero()

    def days_overdue(self, today: Optional[date] = None) -> int:
        if self.due_date is None:
            return 0
        today = today or date.today()
        return max(0, (today - self.due_date).days)

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.due_date is None:
            return False
        today = today or date.today()
        return self.due_date < today and not self.is_fully_paid()

    def aging_bucket(self, today: Optional[date] = None) -> str:
        """Return "Current", "30 Days", "60 Days" or "90+ Days"."""
        if not self.is_overdue(today):
            return "Current"
        days = self.days_overdue(today)
        if days <= 30:
            return "30 Days"
        if days <= 60:
            return "60 Days"
        return "90+ Days"

    # ---------- commands ----------

    def add_payment(self, payment: "VendorPayment") -> None:
        """
        Record a payment against this obligation.

        Raises PaymentNotAllowedError when PAID or CANCELLED and
        PaymentExceedsBalanceError when the payment is larger than what is
        still owed. Nothing changes unless every check passes.
        """
        if not self.status.can_receive_payment():
            raise PaymentNotAllowedError(self.status)
        if payment.accounts_payable is not None:
            raise ValidationError("Payment is already recorded against an accounts payable")

        remaining = self.remaining_balance
        if payment.amount.currency != remaining.currency:
            raise ValidationError(
                f"Payment currency {payment.amount.currency} does not match "
                f"accounts payable currency {remaining.currency}"
            )
        if payment.amount > remaining:
            raise PaymentExceedsBalanceError(payment.amount.amount, remaining.amount)

        payment.sequence = len(self._payments) + 1
        # Must go through the collection: only this side cascades into the session.
        self._payments.append(payment)

        previous = self.status
        if self.is_fully_paid():
            self.status = AccountsPayableStatus.PAID
        else:
            self.status = AccountsPayableStatus.PARTIALLY_PAID

        logger.info(
            "ap_payment_recorded",
            ap_id=str(self.id),
            amount=str(payment.amount.amount),
            remaining=str(self.remaining_balance.amount),
            from_status=previous.value,
            to_status=self.status.value,
        )

    def cancel(self) -> None:
        if self.status == AccountsPayableStatus.PAID:
            raise InvalidStateError("Cannot cancel a fully paid AP")
        if self.status == AccountsPayableStatus.CANCELLED:
            raise InvalidStateError("AP is already cancelled")
        if self._payments:
            raise InvalidStateError("Cannot cancel AP with existing payments")
        self.status = AccountsPayableStatus.CANCELLED
        logger.info("ap_cancelled", ap_id=str(self.id))

    def __repr__(self) -> str:
        return (
            f"AccountsPayable(id={self.id}, cause={self.cause_type.value}:"
            f"{self.cause_reference_number}, total={self.total_amount}, "
            f"status={self.status.value}, due_date={self.due_date})"
        )


class VendorPayment(Base):
    __tablename__ = "vendor_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    accounts_payable_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts_payable.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    _amount: Mapped[Decimal] = mapped_column("amount", Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[VendorPaymentMethod] = mapped_column(
        SAEnum(VendorPaymentMethod, native_enum=False, length=50), nullable=False
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    recorded_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    _accounts_payable: Mapped[Optional[AccountsPayable]] = relationship(
        back_populates="_payments"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_vendor_payment_amount"),
        Index("idx_vendor_payments_ap", "accounts_payable_id"),
    )

    @classmethod
    def create(
        cls,
        *,
        payment_date: date,
        amount: Money,
        payment_method: VendorPaymentMethod,
        recorded_by_id: uuid.UUID,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "VendorPayment":
        if payment_date is None:
            raise ValidationError("Payment date is required")
        if amount is None:
            raise ValidationError("Payment amount is required")
        if payment_method is None:
            raise ValidationError("Payment method is required")
        if recorded_by_id is None:
            raise ValidationError("Recorded-by user is required")
        require_positive(amount, "Payment amount")

        return cls(
            id=uuid.uuid4(),
            payment_date=payment_date,
            _amount=amount.amount,
            currency=amount.currency,
            payment_method=VendorPaymentMethod(payment_method),
            recorded_by_id=recorded_by_id,
            reference_number=reference_number,
            notes=notes,
            created_at=created_at or _utcnow(),
        )

    @property
    def amount(self) -> Money:
        return Money(self._amount, self.currency)

    @property
    def accounts_payable(self) -> Optional[AccountsPayable]:
        return self._accounts_payable

    def is_partial_payment(self) -> bool:
        if self._accounts_payable is None:
            return False
        return self.amount < self._accounts_payable.total_amount

    def __repr__(self) -> str:
        return (
            f"VendorPayment(id={self.id}, payment_date={self.payment_date}, "
            f"amount={self.amount}, method={self.payment_method.value})"
        )
