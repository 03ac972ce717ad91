"""
Quotation: a priced, versioned proposal to a customer.

    DRAFT ──submit──▶ PENDING ──approve──▶ APPROVED ──send──▶ SENT ──accept──▶ ACCEPTED
                         │
                         └──reject──▶ REJECTED

Line items can only change while DRAFT. A revision is a new Quotation
(version + 1, DRAFT, cloned line items) created from APPROVED, REJECTED or
SENT; the source quotation is left untouched.
"""

import enum
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

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
from erp.domain.money import Money, Quantity
from erp.errors import InvalidStateError, ValidationError

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotationStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"


VERSIONABLE_STATUSES = (
    QuotationStatus.APPROVED,
    QuotationStatus.REJECTED,
    QuotationStatus.SENT,
)


class QuotationLineItem(Base):
    __tablename__ = "quotation_line_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quotation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    _quantity: Mapped[Decimal] = mapped_column("quantity", Numeric(10, 2), nullable=False)
    _unit_price: Mapped[Decimal] = mapped_column("unit_price", Numeric(15, 2), nullable=False)
    _line_total: Mapped[Decimal] = mapped_column("line_total", Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_quotation_line_qty"),
        CheckConstraint("unit_price >= 0", name="chk_quotation_line_price"),
        Index("idx_quotation_items_quotation", "quotation_id"),
    )

    @classmethod
    def create(
        cls,
        *,
        product_id: uuid.UUID,
        quantity: Quantity,
        unit_price: Money,
        notes: Optional[str] = None,
    ) -> "QuotationLineItem":
        if product_id is None:
            raise ValidationError("Product is required")
        if quantity is None:
            raise ValidationError("Quantity is required")
        if unit_price is None:
            raise ValidationError("Unit price is required")
        line_total = quantity * unit_price
        return cls(
            id=uuid.uuid4(),
            product_id=product_id,
            _quantity=quantity.value,
            _unit_price=unit_price.amount,
            _line_total=line_total.amount,
            currency=unit_price.currency,
            notes=notes,
        )

    @property
    def quantity(self) -> Quantity:
        return Quantity(self._quantity)

    @property
    def unit_price(self) -> Money:
        return Money(self._unit_price, self.currency)

    @property
    def line_total(self) -> Money:
        return Money(self._line_total, self.currency)

    def clone(self) -> "QuotationLineItem":
        return QuotationLineItem.create(
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            notes=self.notes,
        )


class Quotation(Base):
    __tablename__ = "quotations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QuotationStatus] = mapped_column(
        SAEnum(QuotationStatus, native_enum=False, length=20), nullable=False
    )
    quotation_date: Mapped[date] = mapped_column(Date, nullable=False)
    validity_days: Mapped[int] = mapped_column(Integer, nullable=False)
    _total_amount: Mapped[Decimal] = mapped_column(
        "total_amount", Numeric(15, 2), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    _line_items: Mapped[List[QuotationLineItem]] = relationship(
        cascade="all, delete-orphan",
        order_by=QuotationLineItem.sequence,
    )

    __table_args__ = (
        CheckConstraint("version >= 1", name="chk_quotation_version"),
        CheckConstraint("validity_days > 0", name="chk_quotation_validity"),
        Index("idx_quotation_project", "project_id"),
        Index("idx_quotation_status", "status"),
    )

    @classmethod
    def create(
        cls,
        *,
        project_id: uuid.UUID,
        customer_id: uuid.UUID,
        created_by_id: uuid.UUID,
        line_items: Iterable[QuotationLineItem] = (),
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
        version: int = 1,
        quotation_date: Optional[date] = None,
        currency: Optional[str] = None,
    ) -> "Quotation":
        if project_id is None:
            raise ValidationError("Project is required")
        if customer_id is None:
            raise ValidationError("Customer is required")
        if created_by_id is None:
            raise ValidationError("Created-by user is required")
        if version < 1:
            raise ValidationError("Quotation version starts at 1")
        if validity_days is None:
            validity_days = settings.QUOTATION_VALIDITY_DAYS
        _check_validity_days(validity_days)

        now = _utcnow()
        quotation = cls(
            id=uuid.uuid4(),
            project_id=project_id,
            customer_id=customer_id,
            version=version,
            status=QuotationStatus.DRAFT,
            quotation_date=quotation_date or date.today(),
            validity_days=validity_days,
            _total_amount=Decimal("0"),
            currency=currency or settings.DEFAULT_CURRENCY,
            notes=notes,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )
        quotation._replace_line_items(line_items)
        return quotation

    # ---------- read side ----------

    @property
    def line_items(self) -> Tuple[QuotationLineItem, ...]:
        return tuple(self._line_items)

    @property
    def total_amount(self) -> Money:
        return Money(self._total_amount, self.currency)

    @property
    def expiry_date(self) -> date:
        return self.quotation_date + timedelta(days=self.validity_days)

    def is_expired(self, today: Optional[date] = None) -> bool:
        return (today or date.today()) > self.expiry_date

    def can_be_edited(self) -> bool:
        return self.status == QuotationStatus.DRAFT

    def can_be_submitted(self) -> bool:
        return self.status == QuotationStatus.DRAFT and len(self._line_items) > 0

    def can_create_new_version(self) -> bool:
        return self.status in VERSIONABLE_STATUSES

    def is_approved(self) -> bool:
        return self.status in (
            QuotationStatus.APPROVED,
            QuotationStatus.SENT,
            QuotationStatus.ACCEPTED,
        )

    # ---------- commands ----------

    def update(
        self,
        *,
        line_items: Optional[Iterable[QuotationLineItem]] = None,
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> None:
        if not self.can_be_edited():
            raise InvalidStateError(
                f"Quotation can only be edited in DRAFT status (current: {self.status.value})"
            )
        if validity_days is not None:
            _check_validity_days(validity_days)

        if line_items is not None:
            self._replace_line_items(line_items)
        if validity_days is not None:
            self.validity_days = validity_days
        if notes is not None:
            self.notes = notes

    def submit(self) -> None:
        if self.status != QuotationStatus.DRAFT:
            raise InvalidStateError(
                f"Only DRAFT quotations can be submitted (current: {self.status.value})"
            )
        if not self._line_items:
            raise InvalidStateError("Quotation needs at least one line item to be submitted")
        self._transition(QuotationStatus.PENDING)
        self.submitted_at = _utcnow()

    def approve(self, approved_by_id: uuid.UUID) -> None:
        if approved_by_id is None:
            raise ValidationError("Approver is required")
        if self.status != QuotationStatus.PENDING:
            raise InvalidStateError(
                f"Only PENDING quotations can be approved (current: {self.status.value})"
            )
        self._transition(QuotationStatus.APPROVED)
        self.approved_at = _utcnow()
        self.approved_by_id = approved_by_id

    def reject(self, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")
        if self.status != QuotationStatus.PENDING:
            raise InvalidStateError(
                f"Only PENDING quotations can be rejected (current: {self.status.value})"
            )
        self._transition(QuotationStatus.REJECTED)
        self.rejection_reason = reason.strip()

    def send(self) -> None:
        # SENT → SENT is a resend to the customer
        if self.status not in (QuotationStatus.APPROVED, QuotationStatus.SENT):
            raise InvalidStateError(
                f"Only APPROVED or SENT quotations can be sent (current: {self.status.value})"
            )
        self._transition(QuotationStatus.SENT)

    def accept(self) -> None:
        if self.status not in (QuotationStatus.APPROVED, QuotationStatus.SENT):
            raise InvalidStateError(
                f"Only APPROVED or SENT quotations can be accepted (current: {self.status.value})"
            )
        self._transition(QuotationStatus.ACCEPTED)

    def create_new_version(
        self, created_by_id: uuid.UUID, version: Optional[int] = None
    ) -> "Quotation":
        """Return a new DRAFT revision; ``version`` defaults to this version + 1."""
        if not self.can_create_new_version():
            raise InvalidStateError(
                "Can only create new version from APPROVED, REJECTED, or SENT quotation "
                f"(current: {self.status.value})"
            )
        next_version = version if version is not None else self.version + 1
        if next_version <= self.version:
            raise ValidationError(
                f"New version must be greater than {self.version}, got {next_version}"
            )
        revision = Quotation.create(
            project_id=self.project_id,
            customer_id=self.customer_id,
            created_by_id=created_by_id,
            line_items=[item.clone() for item in self._line_items],
            validity_days=self.validity_days,
            notes=self.notes,
            version=next_version,
            currency=self.currency,
        )
        logger.info(
            "quotation_version_created",
            source_id=str(self.id),
            quotation_id=str(revision.id),
            version=next_version,
        )
        return revision

    # ---------- internals ----------

    def _replace_line_items(self, line_items: Iterable[QuotationLineItem]) -> None:
        items = list(line_items)
        for item in items:
            if item.currency != self.currency:
                raise ValidationError(
                    f"Line item currency {item.currency} does not match quotation currency {self.currency}"
                )
        self._line_items.clear()
        for sequence, item in enumerate(items, start=1):
            item.sequence = sequence
            self._line_items.append(item)
        self._recalculate_total()

    def _recalculate_total(self) -> None:
        self._total_amount = Money.sum(
            (item.line_total for item in self._line_items), self.currency
        ).amount

    def _transition(self, target: QuotationStatus) -> None:
        previous = self.status
        self.status = target
        logger.info(
            "quotation_status_changed",
            quotation_id=str(self.id),
            version=self.version,
            from_status=previous.value,
            to_status=target.value,
        )


def _check_validity_days(validity_days: int) -> None:
    if validity_days is None or validity_days <= 0:
        raise ValidationError("Validity days must be positive")
