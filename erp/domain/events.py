"""
Domain events: immutable facts published after an aggregate changed state.

Events carry identifiers and minimal display context only, never aggregate
references; subscribers reload whatever they need by id.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def event_type(self) -> str:
        return type(self).__name__


# ---------------------------------------------------------------------------
# Purchasing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderCreatedEvent(DomainEvent):
    purchase_order_id: uuid.UUID
    purchase_request_id: uuid.UUID
    po_number: str


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderReceivedEvent(DomainEvent):
    purchase_order_id: uuid.UUID
    purchase_request_id: uuid.UUID
    po_number: str


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderCanceledEvent(DomainEvent):
    purchase_order_id: uuid.UUID
    purchase_request_id: uuid.UUID
    rfq_item_id: str
    po_number: str


# ---------------------------------------------------------------------------
# Quotation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class QuotationSubmittedEvent(DomainEvent):
    quotation_id: uuid.UUID
    version: int
    project_id: uuid.UUID
    submitted_by_id: uuid.UUID


@dataclass(frozen=True, kw_only=True)
class QuotationAcceptedEvent(DomainEvent):
    quotation_id: uuid.UUID
    project_id: uuid.UUID
    accepted_by_id: uuid.UUID
