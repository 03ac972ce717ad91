"""
PurchaseRequest: internal requisition for a service or a material.

    DRAFT ──send_rfq──▶ RFQ_SENT ──select_vendor──▶ VENDOR_SELECTED ──mark_ordered──▶ ORDERED ──close──▶ CLOSED
                           ▲                              │                             │
                           └──────── revert_vendor_selection ◀──────────────────────────┘

    cancel: any state except CLOSED / CANCELLED

Each RFQ line tracks one vendor's answer:

    SENT ──record_reply──▶ REPLIED ──select──▶ SELECTED
      │                      │  ▲                 │
      │                      │  └──deselect───────┘
      │                      └──reject──▶ REJECTED ──unreject──▶ REPLIED
      └──mark_no_response──▶ NO_RESPONSE
"""

import enum
import uuid
from datetime import date, datetime, timezone
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

from erp.database import Base
from erp.domain.money import Money, Quantity
from erp.errors import InvalidStateError, ResourceNotFoundError, ValidationError

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseRequestStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    RFQ_SENT = "RFQ_SENT"
    VENDOR_SELECTED = "VENDOR_SELECTED"
    ORDERED = "ORDERED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class PurchaseNeedType(str, enum.Enum):
    SERVICE = "SERVICE"
    MATERIAL = "MATERIAL"


class RfqItemStatus(str, enum.Enum):
    SENT = "SENT"
    REPLIED = "REPLIED"
    NO_RESPONSE = "NO_RESPONSE"
    SELECTED = "SELECTED"
    REJECTED = "REJECTED"


class RfqItem(Base):
    __tablename__ = "rfq_items"

    item_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    purchase_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    vendor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    vendor_offering_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    status: Mapped[RfqItemStatus] = mapped_column(
        SAEnum(RfqItemStatus, native_enum=False, length=20), nullable=False
    )
    _quoted_price: Mapped[Optional[Decimal]] = mapped_column("quoted_price", Numeric(15, 2))
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    lead_time_days: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "lead_time_days IS NULL OR lead_time_days >= 0", name="chk_rfq_lead_time"
        ),
        Index("idx_rfq_items_pr", "purchase_request_id"),
        Index("idx_rfq_items_vendor", "vendor_id"),
    )

    @classmethod
    def create(
        cls, vendor_id: uuid.UUID, vendor_offering_id: Optional[uuid.UUID] = None
    ) -> "RfqItem":
        if vendor_id is None:
            raise ValidationError("Vendor is required")
        return cls(
            item_id=str(uuid.uuid4()),
            vendor_id=vendor_id,
            vendor_offering_id=vendor_offering_id,
            status=RfqItemStatus.SENT,
            sent_at=_utcnow(),
        )

    @property
    def quoted_price(self) -> Optional[Money]:
        if self._quoted_price is None:
            return None
        return Money(self._quoted_price, self.currency)

    def record_reply(
        self, quoted_price: Money, lead_time_days: Optional[int] = None, notes: Optional[str] = None
    ) -> None:
        self._require(RfqItemStatus.SENT, "record reply for")
        if quoted_price is None:
            raise ValidationError("Quoted price is required")
        if lead_time_days is not None and lead_time_days < 0:
            raise ValidationError("Lead time must not be negative")
        self._quoted_price = quoted_price.amount
        self.currency = quoted_price.currency
        self.lead_time_days = lead_time_days
        if notes is not None:
            self.notes = notes
        self.replied_at = _utcnow()
        self.status = RfqItemStatus.REPLIED

    def mark_no_response(self) -> None:
        self._require(RfqItemStatus.SENT, "mark no response for")
        self.status = RfqItemStatus.NO_RESPONSE

    def select(self) -> None:
        self._require(RfqItemStatus.REPLIED, "select")
        self.status = RfqItemStatus.SELECTED

    def reject(self) -> None:
        self._require(RfqItemStatus.REPLIED, "reject")
        self.status = RfqItemStatus.REJECTED

    def deselect(self) -> None:
        # quote data is kept so the vendor can be picked again
        self._require(RfqItemStatus.SELECTED, "deselect")
        self.status = RfqItemStatus.REPLIED

    def unreject(self) -> None:
        self._require(RfqItemStatus.REJECTED, "unreject")
        self.status = RfqItemStatus.REPLIED

    def _require(self, expected: RfqItemStatus, action: str) -> None:
        if self.status != expected:
            raise InvalidStateError(
                f"Cannot {action} RFQ item in {self.status.value} status"
            )

    def __repr__(self) -> str:
        return f"<RfqItem {self.item_id} vendor={self.vendor_id} {self.status.value}>"


class PurchaseRequest(Base):
    __tablename__ = "purchase_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    need_type: Mapped[PurchaseNeedType] = mapped_column(
        SAEnum(PurchaseNeedType, native_enum=False, length=20), nullable=False
    )
    need_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    request_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    _quantity: Mapped[Decimal] = mapped_column("quantity", Numeric(10, 2), nullable=False)
    uom: Mapped[Optional[str]] = mapped_column(String(20))
    required_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PurchaseRequestStatus] = mapped_column(
        SAEnum(PurchaseRequestStatus, native_enum=False, length=20), nullable=False
    )
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    _rfq_items: Mapped[List[RfqItem]] = relationship(
        cascade="all, delete-orphan",
        order_by=RfqItem.sequence,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_pr_quantity"),
        Index("idx_pr_status", "status"),
        Index("idx_pr_project", "project_id"),
    )

    @classmethod
    def create(
        cls,
        *,
        need_type: PurchaseNeedType,
        need_id: uuid.UUID,
        request_number: str,
        description: str,
        quantity: Quantity,
        required_date: date,
        created_by_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
        uom: Optional[str] = None,
    ) -> "PurchaseRequest":
        if need_type is None or need_id is None:
            raise ValidationError("A service category or material is required")
        if not request_number:
            raise ValidationError("Request number is required")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        if quantity is None:
            raise ValidationError("Quantity is required")
        if required_date is None:
            raise ValidationError("Required date is required")
        if created_by_id is None:
            raise ValidationError("Created-by user is required")

        now = _utcnow()
        return cls(
            id=uuid.uuid4(),
            project_id=project_id,
            need_type=need_type,
            need_id=need_id,
            request_number=request_number,
            description=description.strip(),
            _quantity=quantity.value,
            uom=uom,
            required_date=required_date,
            status=PurchaseRequestStatus.DRAFT,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )

    # ---------- read side ----------

    @property
    def quantity(self) -> Quantity:
        return Quantity(self._quantity)

    @property
    def rfq_items(self) -> Tuple[RfqItem, ...]:
        return tuple(self._rfq_items)

    @property
    def selected_rfq_item(self) -> Optional[RfqItem]:
        for item in self._rfq_items:
            if item.status == RfqItemStatus.SELECTED:
                return item
        return None

    def find_rfq_item(self, item_id: str) -> Optional[RfqItem]:
        for item in self._rfq_items:
            if item.item_id == str(item_id):
                return item
        return None

    def can_send_rfq(self) -> bool:
        return self.status in (PurchaseRequestStatus.DRAFT, PurchaseRequestStatus.RFQ_SENT)

    def can_update(self) -> bool:
        return self.status == PurchaseRequestStatus.DRAFT

    def can_cancel(self) -> bool:
        return self.status not in (PurchaseRequestStatus.CLOSED, PurchaseRequestStatus.CANCELLED)

    # ---------- commands ----------

    def update(
        self,
        *,
        description: Optional[str] = None,
        quantity: Optional[Quantity] = None,
        uom: Optional[str] = None,
        required_date: Optional[date] = None,
    ) -> None:
        if not self.can_update():
            raise InvalidStateError(
                f"Cannot update purchase request in {self.status.value} status"
            )
        if description is not None and not description.strip():
            raise ValidationError("Description must not be blank")

        if description is not None:
            self.description = description.strip()
        if quantity is not None:
            self._quantity = quantity.value
        if uom is not None:
            self.uom = uom
        if required_date is not None:
            self.required_date = required_date

    def add_rfq_item(
        self, vendor_id: uuid.UUID, vendor_offering_id: Optional[uuid.UUID] = None
    ) -> RfqItem:
        if not self.can_send_rfq():
            raise InvalidStateError(
                f"Cannot add RFQ vendor to purchase request in {self.status.value} status"
            )
        if any(item.vendor_id == vendor_id for item in self._rfq_items):
            raise ValidationError(f"Vendor {vendor_id} already has an RFQ for this request")
        item = RfqItem.create(vendor_id, vendor_offering_id)
        item.sequence = len(self._rfq_items) + 1
        self._rfq_items.append(item)
        return item

    def invite_vendors(self, vendor_ids: Iterable[uuid.UUID]) -> List[RfqItem]:
        """Add one RFQ line per vendor; a bad vendor list adds none."""
        vendor_ids = list(vendor_ids)
        if not self.can_send_rfq():
            raise InvalidStateError(
                f"Cannot add RFQ vendor to purchase request in {self.status.value} status"
            )
        invited = {item.vendor_id for item in self._rfq_items}
        for vendor_id in vendor_ids:
            if vendor_id is None:
                raise ValidationError("Vendor is required")
            if vendor_id in invited:
                raise ValidationError(f"Vendor {vendor_id} already has an RFQ for this request")
            invited.add(vendor_id)
        return [self.add_rfq_item(vendor_id) for vendor_id in vendor_ids]

    def send_rfq(self) -> None:
        """DRAFT → RFQ_SENT. Sending again while RFQ_SENT covers newly added vendors."""
        if not self.can_send_rfq():
            raise InvalidStateError(
                f"Cannot send RFQ for purchase request in {self.status.value} status"
            )
        if not self._rfq_items:
            raise InvalidStateError("Cannot send RFQ without at least one vendor")
        if self.status != PurchaseRequestStatus.RFQ_SENT:
            self._transition(PurchaseRequestStatus.RFQ_SENT)

    def record_rfq_reply(
        self,
        item_id: str,
        quoted_price: Money,
        lead_time_days: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> RfqItem:
        self._require(PurchaseRequestStatus.RFQ_SENT, "record RFQ reply for")
        item = self._get_rfq_item(item_id)
        item.record_reply(quoted_price, lead_time_days, notes)
        return item

    def mark_rfq_no_response(self, item_id: str) -> RfqItem:
        self._require(PurchaseRequestStatus.RFQ_SENT, "mark RFQ no response for")
        item = self._get_rfq_item(item_id)
        item.mark_no_response()
        return item

    def reject_rfq(self, item_id: str) -> RfqItem:
        self._require(PurchaseRequestStatus.RFQ_SENT, "reject RFQ for")
        item = self._get_rfq_item(item_id)
        item.reject()
        return item

    def select_vendor(self, item_id: str) -> RfqItem:
        """Pick one replied vendor; every other replied vendor is rejected."""
        self._require(PurchaseRequestStatus.RFQ_SENT, "select vendor for")
        item = self._get_rfq_item(item_id)
        item.select()
        for other in self._rfq_items:
            if other is not item and other.status == RfqItemStatus.REPLIED:
                other.reject()
        self._transition(PurchaseRequestStatus.VENDOR_SELECTED)
        return item

    def mark_ordered(self) -> None:
        self._require(PurchaseRequestStatus.VENDOR_SELECTED, "mark as ordered")
        self._transition(PurchaseRequestStatus.ORDERED)

    def close(self) -> None:
        self._require(PurchaseRequestStatus.ORDERED, "close")
        self._transition(PurchaseRequestStatus.CLOSED)

    def revert_vendor_selection(self, item_id: str) -> None:
        """
        Undo a vendor choice after its purchase order was cancelled.

        The cancelled vendor's line goes back to REPLIED, rejected lines are
        reopened, and the request returns to RFQ_SENT so another vendor can be
        selected or more vendors invited.
        """
        if self.status not in (
            PurchaseRequestStatus.VENDOR_SELECTED,
            PurchaseRequestStatus.ORDERED,
        ):
            raise InvalidStateError(
                f"Cannot revert vendor selection for purchase request in {self.status.value} status"
            )
        item = self._get_rfq_item(item_id)
        item.deselect()
        for other in self._rfq_items:
            if other.status == RfqItemStatus.REJECTED:
                other.unreject()
        self._transition(PurchaseRequestStatus.RFQ_SENT)

    def cancel(self) -> None:
        if not self.can_cancel():
            raise InvalidStateError(
                f"Cannot cancel purchase request in {self.status.value} status"
            )
        self._transition(PurchaseRequestStatus.CANCELLED)

    # ---------- internals ----------

    def _get_rfq_item(self, item_id: str) -> RfqItem:
        item = self.find_rfq_item(item_id)
        if item is None:
            raise ResourceNotFoundError.for_id("RFQ item", item_id)
        return item

    def _require(self, expected: PurchaseRequestStatus, action: str) -> None:
        if self.status != expected:
            raise InvalidStateError(
                f"Cannot {action} purchase request in {self.status.value} status"
            )

    def _transition(self, target: PurchaseRequestStatus) -> None:
        previous = self.status
        self.status = target
        logger.info(
            "purchase_request_status_changed",
            purchase_request_id=str(self.id),
            request_number=self.request_number,
            from_status=previous.value,
            to_status=target.value,
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequest {self.request_number} {self.status.value}>"
