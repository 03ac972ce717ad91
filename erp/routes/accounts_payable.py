import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from erp.database import get_db
from erp.repositories import accounts_payable_repository
from erp.schemas.accounts_payable import AccountsPayableSummary, AgingSummary
from erp.schemas.common import ErrorResponse
from erp.services.accounts_payable_service import AccountsPayableService

router = APIRouter()


def _service(db: AsyncSession) -> AccountsPayableService:
    return AccountsPayableService(accounts_payable_repository(db))


@router.get("/aging", response_model=AgingSummary)
async def aging_summary(
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await _service(db).aging_summary(as_of)


@router.get("/overdue", response_model=List[AccountsPayableSummary])
async def list_overdue(
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    today = as_of or date.today()
    overdue = await _service(db).list_overdue(today)
    return [AccountsPayableSummary.from_aggregate(ap, today) for ap in overdue]


@router.get(
    "/{ap_id}",
    response_model=AccountsPayableSummary,
    responses={404: {"model": ErrorResponse}},
)
async def get_accounts_payable(
    ap_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    ap = await _service(db).get(ap_id)
    return AccountsPayableSummary.from_aggregate(ap)
