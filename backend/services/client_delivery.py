"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Client delivery & payments                                            ║
║                                                                              ║
║  RULES:                                                                      ║
║  - paid_amount <= project_value (hard invariant)                             ║
║  - paid -> paid_amount = project_value, payment_date stamped                 ║
║  - deliver requires project_value > 0                                        ║
║  - deliver: income record inserted first, client flipped conditionally,      ║
║    income record removed if the flip did not happen                          ║
║  - income records outlive their client (client_id is a soft reference)       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any

from pymongo import ReturnDocument

from config import db, to_iso, utc_now
from services.errors import InvalidInputError, InvalidStateError, NotFoundError
from services.event_logger import log_event
from services.permissions import ensure_delete_confirmed

logger = logging.getLogger("client_delivery")

CLIENT_STATUSES = ["onboarding", "in_progress", "waiting", "delivered", "closed"]
PAYMENT_STATUSES = ["pending", "partial", "paid"]


def _value(v):
    return getattr(v, "value", v)


def _new_client(fields: Dict[str, Any], now: datetime) -> dict:
    now_str = to_iso(now)
    client = {
        "id": str(uuid.uuid4()),
        "lead_id": None,
        "business_name": None,
        "owner_name": None,
        "phone": None,
        "address": None,
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
    client.update(fields)
    return client


# ════════════════════════════════════════════════════════════════════════════
# PAYMENT RULES (pure)
# ════════════════════════════════════════════════════════════════════════════

def plan_payment(
    client: dict,
    payment_status,
    project_value: Optional[float] = None,
    paid_amount: Optional[float] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Compute the payment fields for a client.
    Raises InvalidInputError when the result would break paid_amount <= project_value.
    """
    payment_status = _value(payment_status)
    if payment_status not in PAYMENT_STATUSES:
        raise InvalidInputError(f"Invalid payment status: {payment_status}")

    value = (client.get("project_value") or 0) if project_value is None else project_value
    if value < 0:
        raise InvalidInputError("Project value cannot be negative")

    if payment_status == "paid":
        paid = value
        payment_date = to_iso(now or utc_now())
    elif payment_status == "partial":
        if paid_amount is None:
            raise InvalidInputError("Paid amount is required for a partial payment")
        paid = paid_amount
        payment_date = client.get("payment_date")
    else:
        paid = 0
        payment_date = client.get("payment_date")

    if paid < 0:
        raise InvalidInputError("Paid amount cannot be negative")
    if paid > value:
        raise InvalidInputError(
            f"Paid amount ({paid}) cannot exceed the project value ({value})"
        )

    return {
        "project_value": value,
        "payment_status": payment_status,
        "paid_amount": paid,
        "payment_date": payment_date,
    }


def build_income_record(client: dict, lead: Optional[dict], actor_id: Optional[str], now: datetime) -> dict:
    """Financial snapshot taken at delivery"""
    now_str = to_iso(now)
    return {
        "id": str(uuid.uuid4()),
        "client_id": client["id"],
        "business_name": client["business_name"],
        "owner_name": client.get("owner_name"),
        "phone": client.get("phone"),
        "services": list(client.get("services") or []),
        "project_value": client.get("project_value") or 0,
        "paid_amount": client.get("paid_amount") or 0,
        "payment_status": client.get("payment_status") or "pending",
        "payment_date": client.get("payment_date"),
        "delivery_date": now_str,
        "delivered_by": actor_id,
        "notes": client.get("delivery_notes"),
        "lead_source": (lead or {}).get("source"),
        "business_category": (lead or {}).get("business_category"),
        "project_start_date": client.get("start_date"),
        "created_at": now_str,
        "updated_at": now_str,
    }


# ════════════════════════════════════════════════════════════════════════════
# STORE-BACKED OPERATIONS
# ════════════════════════════════════════════════════════════════════════════

async def get_client(client_id: str) -> dict:
    client = await db.clients.find_one({"id": client_id}, {"_id": 0})
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    return client


async def list_clients(status: Optional[str] = None, lead_id: Optional[str] = None) -> List[dict]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if lead_id:
        query["lead_id"] = lead_id
    return await db.clients.find(query, {"_id": 0}).sort("created_at", -1).to_list(5000)


async def create_client(data: Dict[str, Any], actor: dict, now: Optional[datetime] = None) -> dict:
    """Standalone client, not converted from a lead"""
    business_name = (data.get("business_name") or "").strip()
    if not business_name:
        raise InvalidInputError("Business name is required")
    if (data.get("project_value") or 0) < 0:
        raise InvalidInputError("Project value cannot be negative")

    client = _new_client({
        "business_name": business_name,
        "owner_name": data.get("owner_name"),
        "phone": data.get("phone"),
        "address": data.get("address"),
        "services": list(data.get("services") or []),
        "project_value": data.get("project_value") or 0,
    }, now or utc_now())
    await db.clients.insert_one(dict(client))

    logger.info(f"[CLIENT] created client={client['id']} by={actor.get('id')}")
    await log_event("client_created", "client", client["id"], user=actor.get("id", "system"))
    return client


async def update_client_status(client_id: str, status, actor: dict) -> dict:
    status = _value(status)
    if status not in CLIENT_STATUSES:
        raise InvalidInputError(f"Invalid client status: {status}")
    if status == "delivered":
        raise InvalidInputError("Use the deliver action to mark a client delivered")

    client = await db.clients.find_one_and_update(
        {"id": client_id},
        {"$set": {"status": status, "updated_at": to_iso(utc_now())}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    await log_event("client_status_changed", "client", client_id, user=actor.get("id"),
                    details={"status": status})
    return client


async def update_payment(
    client_id: str,
    actor: dict,
    payment_status,
    project_value: Optional[float] = None,
    paid_amount: Optional[float] = None,
    now: Optional[datetime] = None
) -> dict:
    client = await get_client(client_id)
    updates = plan_payment(client, payment_status, project_value, paid_amount, now)
    updates["updated_at"] = to_iso(now or utc_now())

    client = await db.clients.find_one_and_update(
        {"id": client_id},
        {"$set": updates},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if not client:
        raise NotFoundError(f"Client {client_id} not found")

    # keep the delivery snapshot's payment fields in step
    await db.income_records.update_many({"client_id": client_id}, {"$set": updates})

    logger.info(
        f"[CLIENT] payment client={client_id} status={updates['payment_status']} "
        f"paid={updates['paid_amount']}/{updates['project_value']}"
    )
    await log_event("client_payment_updated", "client", client_id, user=actor.get("id"),
                    details={k: updates[k] for k in ("payment_status", "paid_amount", "project_value")})
    return client


async def mark_delivered(
    client_id: str,
    actor: dict,
    delivery_notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Returns {"client": ..., "income_record": ...}.
    """
    now = now or utc_now()
    client = await get_client(client_id)

    if not client.get("project_value"):
        raise InvalidInputError("Project value required: please set the project value before marking as delivered.")
    if client.get("status") in ("delivered", "closed"):
        raise InvalidStateError(f"Client already {client['status']}")

    if delivery_notes:
        client["delivery_notes"] = delivery_notes

    lead = None
    if client.get("lead_id"):
        lead = await db.leads.find_one({"id": client["lead_id"]}, {"_id": 0})

    record = build_income_record(client, lead, actor.get("id"), now)
    await db.income_records.insert_one(dict(record))

    now_str = to_iso(now)
    try:
        updated = await db.clients.find_one_and_update(
            {"id": client_id, "status": client["status"]},
            {"$set": {
                "status": "delivered",
                "delivery_date": now_str,
                "delivered_by": actor.get("id"),
                "delivery_notes": client.get("delivery_notes"),
                "updated_at": now_str,
            }},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER
        )
    except Exception:
        await db.income_records.delete_one({"id": record["id"]})
        logger.error(f"[CLIENT] deliver failed client={client_id}, income record {record['id']} removed")
        raise

    if updated is None:
        await db.income_records.delete_one({"id": record["id"]})
        logger.warning(f"[CLIENT] deliver lost race client={client_id}, income record {record['id']} removed")
        raise InvalidStateError("Client changed since it was loaded, reload and retry.")

    logger.info(f"[CLIENT] delivered client={client_id} income_record={record['id']} by={actor.get('id')}")
    await log_event("client_delivered", "client", client_id, user=actor.get("id"),
                    details={"project_value": record["project_value"]},
                    related={"income_record_id": record["id"], "lead_id": client.get("lead_id")})
    return {"client": updated, "income_record": record}


async def start_new_project(
    client_id: str,
    actor: dict,
    services: Optional[List[str]] = None,
    project_value: float = 0,
    now: Optional[datetime] = None
) -> dict:
    """New client row for the same business, fresh financial state"""
    if project_value < 0:
        raise InvalidInputError("Project value cannot be negative")
    source = await get_client(client_id)

    client = _new_client({
        "lead_id": source.get("lead_id"),
        "business_name": source["business_name"],
        "owner_name": source.get("owner_name"),
        "phone": source.get("phone"),
        "address": source.get("address"),
        "services": [s.strip() for s in (services or []) if s and s.strip()],
        "project_value": project_value,
    }, now or utc_now())
    await db.clients.insert_one(dict(client))

    logger.info(f"[CLIENT] new project client={client['id']} from={client_id}")
    await log_event("client_new_project", "client", client["id"], user=actor.get("id"),
                    related={"client_id": client_id, "lead_id": client["lead_id"]})
    return client


async def delete_client(client_id: str, actor: dict, confirm_text: str) -> None:
    """Income records are kept."""
    ensure_delete_confirmed(confirm_text)
    result = await db.clients.delete_one({"id": client_id})
    if result.deleted_count == 0:
        raise NotFoundError(f"Client {client_id} not found")
    logger.info(f"[CLIENT] deleted client={client_id} by={actor.get('id')}")
    await log_event("client_deleted", "client", client_id, user=actor.get("id"))


async def list_income_records() -> List[dict]:
    return await db.income_records.find({}, {"_id": 0}).sort("delivery_date", -1).to_list(10000)
