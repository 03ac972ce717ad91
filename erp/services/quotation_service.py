"""
Quotation service: drafting, approval and revisions per project.

Versions are numbered per project: a new quotation or a revision takes the
highest existing version for the project plus one.
"""

import uuid
from typing import Iterable, Optional

import structlog

from erp.domain.events import QuotationAcceptedEvent, QuotationSubmittedEvent
from erp.errors import ResourceNotFoundError
from erp.models.quotation import Quotation, QuotationLineItem
from erp.repositories import Repository
from erp.services.event_publisher import DomainEventPublisher

logger = structlog.get_logger()


class QuotationService:
    def __init__(self, quotations: Repository[Quotation], publisher: DomainEventPublisher):
        self.quotations = quotations
        self.publisher = publisher

    async def get(self, quotation_id: uuid.UUID) -> Quotation:
        quotation = await self.quotations.find_by_id(quotation_id)
        if quotation is None:
            raise ResourceNotFoundError.for_id("Quotation", quotation_id)
        return quotation

    async def next_version(self, project_id: uuid.UUID) -> int:
        existing = await self.quotations.list_by(project_id=project_id)
        return max((q.version for q in existing), default=0) + 1

    async def create(
        self,
        *,
        project_id: uuid.UUID,
        customer_id: uuid.UUID,
        created_by_id: uuid.UUID,
        line_items: Iterable[QuotationLineItem],
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Quotation:
        quotation = Quotation.create(
            project_id=project_id,
            customer_id=customer_id,
            created_by_id=created_by_id,
            line_items=line_items,
            validity_days=validity_days,
            notes=notes,
            version=await self.next_version(project_id),
        )
        await self.quotations.save(quotation)
        logger.info(
            "quotation_created",
            quotation_id=str(quotation.id),
            project_id=str(project_id),
            version=quotation.version,
            total=str(quotation.total_amount.amount),
        )
        return quotation

    async def update(
        self,
        quotation_id: uuid.UUID,
        *,
        line_items: Optional[Iterable[QuotationLineItem]] = None,
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.update(line_items=line_items, validity_days=validity_days, notes=notes)
        return await self.quotations.save(quotation)

    async def submit(self, quotation_id: uuid.UUID, submitted_by_id: uuid.UUID) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.submit()
        await self.quotations.save(quotation)
        self.publisher.publish(
            QuotationSubmittedEvent(
                quotation_id=quotation.id,
                version=quotation.version,
                project_id=quotation.project_id,
                submitted_by_id=submitted_by_id,
            )
        )
        return quotation

    async def approve(self, quotation_id: uuid.UUID, approved_by_id: uuid.UUID) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.approve(approved_by_id)
        return await self.quotations.save(quotation)

    async def reject(self, quotation_id: uuid.UUID, reason: str) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.reject(reason)
        return await self.quotations.save(quotation)

    async def send(self, quotation_id: uuid.UUID) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.send()
        return await self.quotations.save(quotation)

    async def accept(self, quotation_id: uuid.UUID, accepted_by_id: uuid.UUID) -> Quotation:
        quotation = await self.get(quotation_id)
        quotation.accept()
        await self.quotations.save(quotation)
        self.publisher.publish(
            QuotationAcceptedEvent(
                quotation_id=quotation.id,
                project_id=quotation.project_id,
                accepted_by_id=accepted_by_id,
            )
        )
        return quotation

    async def create_new_version(
        self, quotation_id: uuid.UUID, created_by_id: uuid.UUID
    ) -> Quotation:
        source = await self.get(quotation_id)
        revision = source.create_new_version(
            created_by_id, version=await self.next_version(source.project_id)
        )
        return await self.quotations.save(revision)
