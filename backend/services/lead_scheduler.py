"""
CRM - Lead follow-up scheduler

Stateless classification of a lead's follow-up urgency.
Evaluated on every read; nothing here is ever persisted.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any

from config import parse_iso, utc_now

PRIORITY_RANK = {"urgent": 0, "high": 1, "normal": 2, "low": 3}


def is_new_lead(lead: dict) -> bool:
    """Never contacted and nothing scheduled"""
    return not lead.get("next_follow_up") and not lead.get("last_contact")


def _follow_up_due(lead: dict, now: datetime) -> bool:
    next_follow_up = parse_iso(lead.get("next_follow_up"))
    return next_follow_up is not None and next_follow_up <= now


def is_overdue(lead: dict, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    return _follow_up_due(lead, now) and lead.get("follow_up_status") == "pending"


def follow_up_done_but_date_arrived(lead: dict, now: Optional[datetime] = None) -> bool:
    """A logged call's next scheduled call has come due"""
    now = now or utc_now()
    return lead.get("follow_up_status") == "done" and _follow_up_due(lead, now)


def effective_priority(lead: dict, now: Optional[datetime] = None) -> str:
    """Overdue leads display as urgent; the stored priority is left alone."""
    if is_overdue(lead, now):
        return "urgent"
    return lead.get("priority") or "normal"


def classify_lead(lead: dict, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    new = is_new_lead(lead)
    overdue = is_overdue(lead, now)
    date_arrived = follow_up_done_but_date_arrived(lead, now)
    return {
        "is_new_lead": new,
        "is_overdue": overdue,
        "follow_up_done_but_date_arrived": date_arrived,
        "needs_call": new or overdue or date_arrived,
        "effective_priority": "urgent" if overdue else (lead.get("priority") or "normal"),
    }


def annotate_leads(leads: List[dict], now: Optional[datetime] = None) -> List[dict]:
    """Copy of each lead with its classification under `follow_up`"""
    now = now or utc_now()
    return [{**lead, "follow_up": classify_lead(lead, now)} for lead in leads]


def sort_leads_for_calling(leads: List[dict], now: Optional[datetime] = None) -> List[dict]:
    """
    Calling order: effective priority first, then earliest next_follow_up.
    Leads without a scheduled call go last within their priority.
    """
    now = now or utc_now()

    def _key(lead):
        rank = PRIORITY_RANK.get(effective_priority(lead, now), PRIORITY_RANK["normal"])
        next_follow_up = parse_iso(lead.get("next_follow_up"))
        return (rank, next_follow_up is None, next_follow_up or now)

    return sorted(leads, key=_key)


def active_pipeline(leads: List[dict]) -> List[dict]:
    """Converted leads leave the pipeline"""
    return [lead for lead in leads if lead.get("status") != "converted"]


def summarize_pipeline(leads: List[dict], now: Optional[datetime] = None, tz=None) -> Dict[str, int]:
    """
    Counts shown above the lead list.
    `tz` decides what "today" means for done_today (UTC when omitted).
    """
    now = now or utc_now()
    local_now = now.astimezone(tz) if tz else now
    today = local_now.date()

    summary = {"total": 0, "needs_call": 0, "overdue": 0, "new": 0, "done": 0, "done_today": 0}
    for lead in active_pipeline(leads):
        flags = classify_lead(lead, now)
        summary["total"] += 1
        if flags["needs_call"]:
            summary["needs_call"] += 1
        if flags["is_overdue"]:
            summary["overdue"] += 1
        if flags["is_new_lead"]:
            summary["new"] += 1
        if lead.get("last_contact") and not flags["needs_call"]:
            summary["done"] += 1

        last_contact = parse_iso(lead.get("last_contact"))
        if last_contact is not None:
            local_contact = last_contact.astimezone(tz) if tz else last_contact
            if local_contact.date() == today:
                summary["done_today"] += 1

    return summary
