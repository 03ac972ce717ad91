"""
PurchaseOrder: an order placed with the vendor picked on a PurchaseRequest.

    DRAFT ──send──▶ SENT ──confirm──▶ CONFIRMED ──receive──▶ RECEIVED
      └────────────────┴──────────────────┴──cancel──▶ CANCELLED

The request is referenced by id only. Changes that matter to the request are
announced through PurchaseOrder*Event (see erp.domain.events).
"""

import enum
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Date,
    DateTime,
    Text,
    Uuid,
    Enum as SAEnum,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column
import structlog

from erp.database import Base
from erp.domain.events import (
    PurchaseOrderCanceledEvent,
    PurchaseOrderCreatedEvent,
    PurchaseOrderReceivedEvent,
)
from erp.domain.money import Money, require_positive
from erp.errors import InvalidStateError, ValidationError

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        return self in (PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    purchase_request_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    rfq_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    vendor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    po_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    _total_amount: Mapped[Decimal] = mapped_column(
        "total_amount", Numeric(15, 2), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SAEnum(PurchaseOrderStatus, native_enum=False, length=20), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="chk_po_total_positive"),
        CheckConstraint(
            "expected_delivery_date >= order_date", name="chk_po_delivery_after_order"
        ),
        Index("idx_po_purchase_request", "purchase_request_id"),
        Index("idx_po_rfq_item", "rfq_item_id"),
        Index("idx_po_status", "status"),
    )

    @classmethod
    def create(
        cls,
        *,
        purchase_request_id: uuid.UUID,
        rfq_item_id: str,
        vendor_id: uuid.UUID,
        po_number: str,
        order_date: date,
        expected_delivery_date: date,
        total_amount: Money,
        created_by_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> "PurchaseOrder":
        if purchase_request_id is None or not rfq_item_id:
            raise ValidationError("Purchase order must reference a purchase request RFQ item")
        if vendor_id is None:
            raise ValidationError("Vendor is required")
        if not po_number:
            raise ValidationError("PO number is required")
        if order_date is None or expected_delivery_date is None:
            raise ValidationError("Order date and expected delivery date are required")
        if created_by_id is None:
            raise ValidationError("Created-by user is required")
        require_positive(total_amount, "Total amount")
        _check_delivery_date(order_date, expected_delivery_date)

        now = _utcnow()
        return cls(
            id=uuid.uuid4(),
            purchase_request_id=purchase_request_id,
            rfq_item_id=str(rfq_item_id),
            project_id=project_id,
            vendor_id=vendor_id,
            po_number=po_number,
            order_date=order_date,
            expected_delivery_date=expected_delivery_date,
            _total_amount=total_amount.amount,
            currency=total_amount.currency,
            status=PurchaseOrderStatus.DRAFT,
            notes=notes,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )

    @property
    def total_amount(self) -> Money:
        return Money(self._total_amount, self.currency)

    def can_update(self) -> bool:
        return self.status == PurchaseOrderStatus.DRAFT

    def can_cancel(self) -> bool:
        return not self.status.is_terminal()

    def update(
        self,
        *,
        expected_delivery_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> None:
        if not self.can_update():
            raise InvalidStateError(
                f"Cannot update purchase order in {self.status.value} status"
            )
        if expected_delivery_date is not None:
            _check_delivery_date(self.order_date, expected_delivery_date)
            self.expected_delivery_date = expected_delivery_date
        if notes is not None:
            self.notes = notes

    def send(self) -> None:
        self._require(PurchaseOrderStatus.DRAFT, "send")
        self._transition(PurchaseOrderStatus.SENT)

    def confirm(self) -> None:
        self._require(PurchaseOrderStatus.SENT, "confirm")
        self._transition(PurchaseOrderStatus.CONFIRMED)

    def receive(self) -> None:
        self._require(PurchaseOrderStatus.CONFIRMED, "receive")
        self._transition(PurchaseOrderStatus.RECEIVED)

    def cancel(self) -> None:
        if not self.can_cancel():
            raise InvalidStateError(
                f"Cannot cancel purchase order in {self.status.value} status"
            )
        self._transition(PurchaseOrderStatus.CANCELLED)

    # ---------- events ----------

    def created_event(self) -> PurchaseOrderCreatedEvent:
        return PurchaseOrderCreatedEvent(
            purchase_order_id=self.id,
            purchase_request_id=self.purchase_request_id,
            po_number=self.po_number,
        )

    def received_event(self) -> PurchaseOrderReceivedEvent:
        return PurchaseOrderReceivedEvent(
            purchase_order_id=self.id,
            purchase_request_id=self.purchase_request_id,
            po_number=self.po_number,
        )

    def canceled_event(self) -> PurchaseOrderCanceledEvent:
        return PurchaseOrderCanceledEvent(
            purchase_order_id=self.id,
            purchase_request_id=self.purchase_request_id,
            rfq_item_id=self.rfq_item_id,
            po_number=self.po_number,
        )

    # ---------- internals ----------

    def _require(self, expected: PurchaseOrderStatus, action: str) -> None:
        if self.status != expected:
            raise InvalidStateError(
                f"Cannot {action} purchase order in {self.status.value} status"
            )

    def _transition(self, target: PurchaseOrderStatus) -> None:
        previous = self.status
        self.status = target
        logger.info(
            "purchase_order_status_changed",
            purchase_order_id=str(self.id),
            po_number=self.po_number,
            from_status=previous.value,
            to_status=target.value,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} {self.status.value}>"


def _check_delivery_date(order_date: date, expected_delivery_date: date) -> None:
    if expected_delivery_date < order_date:
        raise ValidationError("Expected delivery date cannot be before order date")
