"""
CRM - Financial reporting

Totals and period breakdowns computed from income records (not clients),
so history survives client deletion. Periods are evaluated in the
business timezone (REPORTING_TIMEZONE).
"""

import calendar
from datetime import datetime
from typing import List, Optional, Dict, Any

import pytz

import config
from config import db, parse_iso, utc_now
from services.errors import InvalidInputError

PERIODS = [
    "this-month",
    "last-month",
    "last-3-months",
    "last-6-months",
    "this-year",
    "specific-month",
    "all-time",
]


def reporting_tz():
    return pytz.timezone(config.REPORTING_TIMEZONE)


def sub_months(dt: datetime, months: int) -> datetime:
    """Same day N months earlier, clamped to the month's last day"""
    month_index = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def record_local_datetime(record: dict, tz) -> Optional[datetime]:
    """delivery_date, falling back to created_at, in the reporting timezone"""
    value = record.get("delivery_date") or record.get("created_at")
    if not value:
        return None
    if isinstance(value, str) and len(value) == 10:
        # date-only values are already local calendar days
        year, month, day = (int(part) for part in value.split("-"))
        return tz.localize(datetime(year, month, day))
    return parse_iso(value).astimezone(tz)


def in_period(
    record_dt: datetime,
    period: str,
    local_now: datetime,
    month: Optional[int] = None,
    year: Optional[int] = None
) -> bool:
    if period == "this-month":
        return (record_dt.year, record_dt.month) == (local_now.year, local_now.month)
    if period == "last-month":
        last = sub_months(local_now, 1)
        return (record_dt.year, record_dt.month) == (last.year, last.month)
    if period == "last-3-months":
        return sub_months(local_now, 3) <= record_dt <= local_now
    if period == "last-6-months":
        return sub_months(local_now, 6) <= record_dt <= local_now
    if period == "this-year":
        return record_dt.year == local_now.year
    if period == "specific-month":
        return (record_dt.year, record_dt.month) == (year or local_now.year, month or local_now.month)
    if period == "all-time":
        return True
    raise InvalidInputError(f"Unknown period: {period}. Valid: {PERIODS}")


def records_for_period(
    records: List[dict],
    period: str,
    now: Optional[datetime] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    tz=None
) -> List[dict]:
    tz = tz or reporting_tz()
    local_now = (now or utc_now()).astimezone(tz)
    if period not in PERIODS:
        raise InvalidInputError(f"Unknown period: {period}. Valid: {PERIODS}")
    if month is not None and not 1 <= month <= 12:
        raise InvalidInputError("Month must be between 1 and 12")

    selected = []
    for record in records:
        record_dt = record_local_datetime(record, tz)
        if record_dt is not None and in_period(record_dt, period, local_now, month, year):
            selected.append(record)
    return selected


def _revenue(records: List[dict]) -> float:
    return sum(r.get("project_value") or 0 for r in records)


def _paid(records: List[dict]) -> float:
    return sum(r.get("paid_amount") or 0 for r in records)


def revenue_change(this_month: float, last_month: float) -> float:
    """Month-over-month revenue change in percent"""
    if last_month > 0:
        return (this_month - last_month) / last_month * 100
    return 100.0 if this_month > 0 else 0.0


def compute_financial_summary(
    records: List[dict],
    period: str = "this-month",
    now: Optional[datetime] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    tz=None
) -> Dict[str, Any]:
    tz = tz or reporting_tz()
    now = now or utc_now()

    period_records = records_for_period(records, period, now, month, year, tz)
    this_month_revenue = _revenue(records_for_period(records, "this-month", now, tz=tz))
    last_month_revenue = _revenue(records_for_period(records, "last-month", now, tz=tz))

    total_revenue = _revenue(records)
    total_paid = _paid(records)
    projects = len(records)

    return {
        "period": period,
        "total_revenue": total_revenue,
        "total_paid": total_paid,
        "total_pending": total_revenue - total_paid,
        "completed_projects": projects,
        "avg_project_value": total_revenue / projects if projects else 0,
        "period_revenue": _revenue(period_records),
        "period_paid": _paid(period_records),
        "period_projects": len(period_records),
        "this_month_revenue": this_month_revenue,
        "last_month_revenue": last_month_revenue,
        "revenue_change": revenue_change(this_month_revenue, last_month_revenue),
        "paid_projects": sum(1 for r in records if r.get("payment_status") == "paid"),
        "partial_projects": sum(1 for r in records if r.get("payment_status") == "partial"),
        "pending_projects": sum(1 for r in records if r.get("payment_status") == "pending"),
        "period_records": period_records,
    }


async def get_financial_summary(
    period: str = "this-month",
    month: Optional[int] = None,
    year: Optional[int] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    records = await db.income_records.find({}, {"_id": 0}).sort("delivery_date", -1).to_list(10000)
    return compute_financial_summary(records, period, now, month, year)
