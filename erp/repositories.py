"""
Aggregate repositories.

Services and the event handler only see the ``Repository`` protocol: load an
aggregate by id, save it back, or list by simple equality filters. Two
implementations ship here:

  InMemoryRepository     dict-backed, used by unit tests and scripts
  SqlAlchemyRepository   AsyncSession-backed; owned children are eager-loaded
                         with selectinload so no lazy IO happens later

SqlAlchemyRepository never commits. get_db() commits at the end of the unit
of work.
"""

from typing import Any, Dict, Generic, List, Optional, Protocol, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from erp.models.accounts_payable import AccountsPayable
from erp.models.purchase_order import PurchaseOrder
from erp.models.purchase_request import PurchaseRequest
from erp.models.quotation import Quotation

logger = structlog.get_logger()

T = TypeVar("T")


class Repository(Protocol[T]):
    async def find_by_id(self, aggregate_id: Any) -> Optional[T]:
        ...

    async def save(self, aggregate: T) -> T:
        ...

    async def list_by(self, **filters: Any) -> List[T]:
        ...


class InMemoryRepository(Generic[T]):
    def __init__(self, *aggregates: T):
        self._items: Dict[Any, T] = {}
        for aggregate in aggregates:
            self._items[aggregate.id] = aggregate

    async def find_by_id(self, aggregate_id: Any) -> Optional[T]:
        return self._items.get(aggregate_id)

    async def save(self, aggregate: T) -> T:
        self._items[aggregate.id] = aggregate
        return aggregate

    async def list_by(self, **filters: Any) -> List[T]:
        return [
            item
            for item in self._items.values()
            if all(getattr(item, key) == value for key, value in filters.items())
        ]

    def __len__(self) -> int:
        return len(self._items)


class SqlAlchemyRepository(Generic[T]):
    def __init__(self, session: AsyncSession, model: Type[T], *children: Any):
        self.session = session
        self.model = model
        self._options = [selectinload(child) for child in children]

    async def find_by_id(self, aggregate_id: Any) -> Optional[T]:
        result = await self.session.execute(
            select(self.model).options(*self._options).where(self.model.id == aggregate_id)
        )
        return result.scalar_one_or_none()

    async def save(self, aggregate: T) -> T:
        self.session.add(aggregate)
        await self.session.flush()
        logger.debug(
            "aggregate_saved",
            model=self.model.__name__,
            aggregate_id=str(aggregate.id),
        )
        return aggregate

    async def list_by(self, **filters: Any) -> List[T]:
        result = await self.session.execute(
            select(self.model).options(*self._options).filter_by(**filters)
        )
        return list(result.scalars().all())


def accounts_payable_repository(session: AsyncSession) -> SqlAlchemyRepository[AccountsPayable]:
    return SqlAlchemyRepository(session, AccountsPayable, AccountsPayable._payments)


def quotation_repository(session: AsyncSession) -> SqlAlchemyRepository[Quotation]:
    return SqlAlchemyRepository(session, Quotation, Quotation._line_items)


def purchase_request_repository(session: AsyncSession) -> SqlAlchemyRepository[PurchaseRequest]:
    return SqlAlchemyRepository(session, PurchaseRequest, PurchaseRequest._rfq_items)


def purchase_order_repository(session: AsyncSession) -> SqlAlchemyRepository[PurchaseOrder]:
    return SqlAlchemyRepository(session, PurchaseOrder)
