"""
CRM - Routes Financials
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from routes.auth import get_current_user
from services.client_delivery import list_income_records
from services.financials import get_financial_summary

router = APIRouter(prefix="/financials", tags=["Financials"])


@router.get("/summary")
async def financial_summary(
    period: str = "this-month",
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = None,
    user: dict = Depends(get_current_user)
):
    """period: this-month | last-month | last-3-months | last-6-months | this-year | specific-month | all-time"""
    return await get_financial_summary(period, month, year)


@router.get("/income-records")
async def income_records(user: dict = Depends(get_current_user)):
    records = await list_income_records()
    return {"records": records, "count": len(records)}
