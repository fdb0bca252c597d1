"""
CRM - Financial reporting tests
Periods are evaluated in Asia/Kolkata.
"""

import pytest
from datetime import datetime, timezone

import pytz

from services.errors import InvalidInputError
from services.financials import (
    compute_financial_summary,
    get_financial_summary,
    records_for_period,
    revenue_change,
    sub_months,
)

KOLKATA = pytz.timezone("Asia/Kolkata")
# 15 Aug 2026, 10:00 UTC
NOW = datetime(2026, 8, 15, 10, 0, tzinfo=timezone.utc)


def _record(rid, delivery_date, value, paid=0, status="pending"):
    return {"id": rid, "delivery_date": delivery_date, "project_value": value,
            "paid_amount": paid, "payment_status": status}


RECORDS = [
    _record("aug-1", "2026-08-02T06:00:00+00:00", 10000, 10000, "paid"),
    _record("aug-2", "2026-08-10T06:00:00+00:00", 5000, 2000, "partial"),
    _record("jul-1", "2026-07-20T06:00:00+00:00", 5000),
    _record("apr-1", "2026-04-20T06:00:00+00:00", 3000, 3000, "paid"),
    _record("last-year", "2025-12-30T06:00:00+00:00", 1000),
]


def _ids(records):
    return [r["id"] for r in records]


class TestSubMonths:

    def test_clamps_to_month_end(self):
        assert sub_months(datetime(2026, 3, 31), 1) == datetime(2026, 2, 28)

    def test_crosses_year(self):
        assert sub_months(datetime(2026, 1, 15), 2) == datetime(2025, 11, 15)


class TestPeriods:

    def test_this_month(self):
        assert _ids(records_for_period(RECORDS, "this-month", NOW, tz=KOLKATA)) == ["aug-1", "aug-2"]

    def test_last_month(self):
        assert _ids(records_for_period(RECORDS, "last-month", NOW, tz=KOLKATA)) == ["jul-1"]

    def test_last_3_months(self):
        assert _ids(records_for_period(RECORDS, "last-3-months", NOW, tz=KOLKATA)) == ["aug-1", "aug-2", "jul-1"]

    def test_last_6_months(self):
        assert _ids(records_for_period(RECORDS, "last-6-months", NOW, tz=KOLKATA)) == [
            "aug-1", "aug-2", "jul-1", "apr-1"
        ]

    def test_this_year(self):
        assert "last-year" not in _ids(records_for_period(RECORDS, "this-year", NOW, tz=KOLKATA))

    def test_specific_month(self):
        assert _ids(records_for_period(RECORDS, "specific-month", NOW, month=12, year=2025, tz=KOLKATA)) == [
            "last-year"
        ]

    def test_all_time(self):
        assert len(records_for_period(RECORDS, "all-time", NOW, tz=KOLKATA)) == 5

    def test_month_boundary_uses_business_timezone(self):
        # 31 Jul 20:00 UTC is already 1 Aug in Kolkata
        record = _record("edge", "2026-07-31T20:00:00+00:00", 100)
        assert _ids(records_for_period([record], "this-month", NOW, tz=KOLKATA)) == ["edge"]
        assert _ids(records_for_period([record], "this-month", NOW, tz=pytz.utc)) == []

    def test_created_at_fallback_and_date_only(self):
        records = [
            {"id": "created", "delivery_date": None, "created_at": "2026-08-03T00:00:00+00:00", "project_value": 1},
            {"id": "date-only", "delivery_date": "2026-08-04", "project_value": 1},
        ]
        assert _ids(records_for_period(records, "this-month", NOW, tz=KOLKATA)) == ["created", "date-only"]

    def test_unknown_period(self):
        with pytest.raises(InvalidInputError):
            records_for_period(RECORDS, "fortnight", NOW, tz=KOLKATA)


class TestSummary:

    def test_totals(self):
        summary = compute_financial_summary(RECORDS, "this-month", NOW, tz=KOLKATA)
        assert summary["total_revenue"] == 24000
        assert summary["total_paid"] == 15000
        assert summary["total_pending"] == 9000
        assert summary["completed_projects"] == 5
        assert summary["avg_project_value"] == 4800
        assert summary["period_revenue"] == 15000
        assert summary["period_paid"] == 12000
        assert summary["period_projects"] == 2
        assert summary["paid_projects"] == 2
        assert summary["partial_projects"] == 1
        assert summary["pending_projects"] == 2

    def test_revenue_change(self):
        summary = compute_financial_summary(RECORDS, "all-time", NOW, tz=KOLKATA)
        assert summary["this_month_revenue"] == 15000
        assert summary["last_month_revenue"] == 5000
        assert summary["revenue_change"] == 200

    def test_revenue_change_without_last_month(self):
        assert revenue_change(500, 0) == 100
        assert revenue_change(0, 0) == 0

    def test_empty(self):
        summary = compute_financial_summary([], "all-time", NOW, tz=KOLKATA)
        assert summary["avg_project_value"] == 0
        assert summary["revenue_change"] == 0


class TestStoreSummary:

    @pytest.mark.asyncio
    async def test_reads_income_records(self, mock_db):
        for record in RECORDS:
            await mock_db.income_records.insert_one(dict(record))
        summary = await get_financial_summary("all-time", now=NOW)
        assert summary["total_revenue"] == 24000
        assert summary["period_projects"] == 5
