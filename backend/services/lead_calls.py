"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Lead call actions                                                     ║
║                                                                              ║
║  Log Call / Mark Call Done / No Response / Convert to Client                 ║
║                                                                              ║
║  RULES:                                                                      ║
║  - Every action appends ONE structured entry to lead.history ($push)         ║
║  - Converted leads are out of the pipeline: no more call actions             ║
║  - Convert: client inserted, lead flipped conditionally, client removed      ║
║    again if the flip did not happen                                          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from pymongo import ReturnDocument

from config import db, to_iso, parse_iso, utc_now
from services.errors import InvalidInputError, InvalidStateError, NotFoundError
from services.permissions import ensure_admin, ensure_delete_confirmed
from services.event_logger import log_event

logger = logging.getLogger("lead_calls")

LOG_CALL_OUTCOMES = ["call_back", "interested", "not_interested", "not_sure", "no_response", "note"]
LEAD_PRIORITIES = ["low", "normal", "high", "urgent"]

NO_RESPONSE_RETRY_HOURS = 24
NO_RESPONSE_NOTE = "No answer, will try again tomorrow"

ACTIVE_LEAD = {"status": {"$ne": "converted"}}


def history_entry(outcome: str, content: str, user_id: Optional[str], now: datetime) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "timestamp": to_iso(now),
        "outcome": outcome,
        "content": content,
        "user_id": user_id,
    }


def _value(v):
    return getattr(v, "value", v)


def _parse_date(value, field: str) -> datetime:
    try:
        parsed = parse_iso(value)
    except ValueError:
        raise InvalidInputError(f"Invalid {field}: {value}")
    if parsed is None:
        raise InvalidInputError(f"{field} is required")
    return parsed


# ════════════════════════════════════════════════════════════════════════════
# CRUD
# ════════════════════════════════════════════════════════════════════════════

async def get_lead(lead_id: str) -> dict:
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFoundError(f"Lead {lead_id} not found")
    return lead


async def list_leads(include_converted: bool = False, assigned_to: Optional[str] = None) -> List[dict]:
    query: Dict[str, Any] = {} if include_converted else dict(ACTIVE_LEAD)
    if assigned_to:
        query["assigned_to"] = assigned_to
    return await db.leads.find(query, {"_id": 0}).sort("created_at", -1).to_list(5000)


async def create_lead(data: Dict[str, Any], actor: dict, now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    name = (data.get("name") or "").strip()
    if not name:
        raise InvalidInputError("Name is required")

    status = _value(data.get("status") or "not_sure")
    if status == "converted":
        raise InvalidInputError("Leads are converted through the convert action")

    next_follow_up = data.get("next_follow_up")
    now_str = to_iso(now)

    history = []
    if data.get("notes"):
        history.append(history_entry("note", data["notes"], actor.get("id"), now))

    lead = {
        "id": str(uuid.uuid4()),
        "name": name,
        "phone": data.get("phone"),
        "email": data.get("email"),
        "business_name": data.get("business_name"),
        "business_category": data.get("business_category"),
        "address": data.get("address"),
        "assigned_to": data.get("assigned_to"),
        "source": data.get("source"),
        "status": status,
        "interest_level": data.get("interest_level", 50),
        "priority": _value(data.get("priority") or "normal"),
        "follow_up_status": "pending",
        "last_contact": None,
        "next_follow_up": to_iso(_parse_date(next_follow_up, "next follow-up")) if next_follow_up else None,
        "notes": data.get("notes"),
        "history": history,
        "created_by": actor.get("id"),
        "created_at": now_str,
        "updated_at": now_str,
    }
    await db.leads.insert_one(dict(lead))

    logger.info(f"[LEAD] created lead={lead['id']} name={name} by={actor.get('id')}")
    await log_event("lead_created", "lead", lead["id"], user=actor.get("id", "system"),
                    details={"source": lead["source"]})
    return lead


async def update_lead_priority(lead_id: str, priority, actor: dict) -> dict:
    priority = _value(priority)
    if priority not in LEAD_PRIORITIES:
        raise InvalidInputError(f"Invalid priority: {priority}")
    lead = await db.leads.find_one_and_update(
        {"id": lead_id},
        {"$set": {"priority": priority, "updated_at": to_iso(utc_now())}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if not lead:
        raise NotFoundError(f"Lead {lead_id} not found")
    await log_event("lead_priority_changed", "lead", lead_id, user=actor.get("id"),
                    details={"priority": priority})
    return lead


async def delete_lead(lead_id: str, actor: dict, confirm_text: Optional[str] = None) -> None:
    """Clients and income records derived from the lead keep their lead_id."""
    ensure_admin(actor, "delete a lead")
    ensure_delete_confirmed(confirm_text)
    result = await db.leads.delete_one({"id": lead_id})
    if result.deleted_count == 0:
        raise NotFoundError(f"Lead {lead_id} not found")
    logger.info(f"[LEAD] deleted lead={lead_id} by={actor.get('id')}")
    await log_event("lead_deleted", "lead", lead_id, user=actor.get("id"))


# ════════════════════════════════════════════════════════════════════════════
# CALL ACTIONS
# ════════════════════════════════════════════════════════════════════════════

async def _apply_call(lead_id: str, updates: Dict[str, Any], entry: dict) -> dict:
    """Set fields and append the history entry, unless the lead is converted"""
    lead = await db.leads.find_one_and_update(
        {"id": lead_id, **ACTIVE_LEAD},
        {"$set": updates, "$push": {"history": entry}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if lead is None:
        await get_lead(lead_id)
        raise InvalidStateError("Lead already converted to a client.")
    return lead


async def log_call(
    lead_id: str,
    actor: dict,
    outcome: str = "call_back",
    summary: str = "",
    interest_level: Optional[int] = None,
    next_follow_up=None,
    now: Optional[datetime] = None
) -> dict:
    outcome = _value(outcome)
    summary = (summary or "").strip()
    if not summary:
        raise InvalidInputError("Please enter call notes.")
    if outcome not in LOG_CALL_OUTCOMES:
        raise InvalidInputError(f"Invalid call outcome: {outcome}")
    if interest_level is not None and not 0 <= interest_level <= 100:
        raise InvalidInputError("Interest level must be between 0 and 100")

    now = now or utc_now()
    updates: Dict[str, Any] = {
        "last_contact": to_iso(now),
        "follow_up_status": "done",
        "updated_at": to_iso(now),
    }
    if interest_level is not None:
        updates["interest_level"] = interest_level

    if outcome == "not_interested":
        updates["status"] = "not_interested"
        updates["next_follow_up"] = None
    elif outcome == "interested":
        updates["status"] = "interested"

    if next_follow_up:
        updates["next_follow_up"] = to_iso(_parse_date(next_follow_up, "next follow-up"))
        updates["follow_up_status"] = "pending"

    lead = await _apply_call(lead_id, updates, history_entry(outcome, summary, actor.get("id"), now))

    logger.info(f"[LEAD] call logged lead={lead_id} outcome={outcome} by={actor.get('id')}")
    await log_event("lead_call_logged", "lead", lead_id, user=actor.get("id"),
                    details={"outcome": outcome, "next_follow_up": lead.get("next_follow_up")})
    return lead


async def mark_call_done(
    lead_id: str,
    actor: dict,
    comment: str,
    next_call_at,
    now: Optional[datetime] = None
) -> dict:
    """Overdue-banner flow: comment AND next call date are both mandatory."""
    comment = (comment or "").strip()
    if not comment:
        raise InvalidInputError("Comment required: please add a comment about the call.")
    if not next_call_at:
        raise InvalidInputError("Next call date required: please schedule the next follow-up call.")
    next_call = _parse_date(next_call_at, "next call date")

    now = now or utc_now()
    updates = {
        "last_contact": to_iso(now),
        "next_follow_up": to_iso(next_call),
        "follow_up_status": "pending",
        "updated_at": to_iso(now),
    }
    lead = await _apply_call(lead_id, updates, history_entry("call_completed", comment, actor.get("id"), now))

    logger.info(f"[LEAD] call done lead={lead_id} next={updates['next_follow_up']} by={actor.get('id')}")
    await log_event("lead_call_completed", "lead", lead_id, user=actor.get("id"),
                    details={"next_follow_up": updates["next_follow_up"]})
    return lead


async def record_no_response(lead_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    retry_at = now + timedelta(hours=NO_RESPONSE_RETRY_HOURS)
    updates = {
        "last_contact": to_iso(now),
        "follow_up_status": "done",
        "next_follow_up": to_iso(retry_at),
        "updated_at": to_iso(now),
    }
    lead = await _apply_call(lead_id, updates, history_entry("no_response", NO_RESPONSE_NOTE, actor.get("id"), now))

    logger.info(f"[LEAD] no response lead={lead_id} retry={updates['next_follow_up']}")
    await log_event("lead_no_response", "lead", lead_id, user=actor.get("id"))
    return lead


# ════════════════════════════════════════════════════════════════════════════
# CONVERSION
# ════════════════════════════════════════════════════════════════════════════

def build_client_from_lead(lead: dict, now: datetime) -> dict:
    now_str = to_iso(now)
    return {
        "id": str(uuid.uuid4()),
        "lead_id": lead["id"],
        "business_name": lead.get("business_name") or lead["name"],
        "owner_name": lead["name"],
        "phone": lead.get("phone"),
        "address": lead.get("address"),
        "services": [],
        "start_date": now.date().isoformat(),
        "delivery_date": None,
        "delivered_by": None,
        "status": "onboarding",
        "delivery_notes": None,
        "project_value": 0,
        "payment_status": "pending",
        "paid_amount": 0,
        "payment_date": None,
        "created_at": now_str,
        "updated_at": now_str,
    }


async def convert_to_client(lead_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    """
    Returns {"lead": ..., "client": ...}.
    The client exists only if the lead ends up converted by this call.
    """
    now = now or utc_now()
    lead = await get_lead(lead_id)
    if lead.get("status") == "converted":
        raise InvalidStateError("Lead already converted to a client.")

    client = build_client_from_lead(lead, now)
    await db.clients.insert_one(dict(client))

    try:
        updated = await db.leads.find_one_and_update(
            {"id": lead_id, **ACTIVE_LEAD},
            {
                "$set": {"status": "converted", "updated_at": to_iso(now)},
                "$push": {"history": history_entry(
                    "note", f"Converted to client {client['business_name']}", actor.get("id"), now
                )},
            },
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER
        )
    except Exception:
        await db.clients.delete_one({"id": client["id"]})
        logger.error(f"[LEAD] convert failed lead={lead_id}, client={client['id']} removed")
        raise

    if updated is None:
        await db.clients.delete_one({"id": client["id"]})
        logger.warning(f"[LEAD] convert lost race lead={lead_id}, client={client['id']} removed")
        raise InvalidStateError("Lead already converted to a client.")

    logger.info(f"[LEAD] converted lead={lead_id} -> client={client['id']} by={actor.get('id')}")
    await log_event("lead_converted", "lead", lead_id, user=actor.get("id"),
                    related={"client_id": client["id"]})
    return {"lead": updated, "client": client}


# ════════════════════════════════════════════════════════════════════════════
# LEGACY NOTES
# ════════════════════════════════════════════════════════════════════════════

LEGACY_ENTRY_RE = re.compile(r"\[(.*?)\] (.*?): (.*)", re.DOTALL)


def parse_legacy_notes(notes: Optional[str], fallback_timestamp: Optional[str] = None) -> List[dict]:
    """
    Split a legacy notes blob ("[ts] outcome: content" blocks separated by
    blank lines) into history entries. Unstructured blocks become "note".
    """
    if not notes:
        return []

    fallback_timestamp = fallback_timestamp or to_iso(utc_now())
    entries = []
    for block in notes.split("\n\n"):
        if not block.strip():
            continue
        match = LEGACY_ENTRY_RE.match(block)
        if match:
            timestamp, outcome, content = match.groups()
            try:
                parsed = parse_iso(timestamp)
            except ValueError:
                parsed = None
            timestamp = to_iso(parsed) if parsed else fallback_timestamp
        else:
            timestamp, outcome, content = fallback_timestamp, "note", block
        entries.append({
            "id": str(uuid.uuid4()),
            "timestamp": timestamp,
            "outcome": outcome,
            "content": content,
            "user_id": None,
        })
    return entries
