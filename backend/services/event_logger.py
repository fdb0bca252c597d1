"""
CRM - Event Logger

Audit trail for lifecycle transitions.
Single function to call from any service.
"""

import uuid
from typing import Optional, Dict, Any, List
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Write a single event to the event_log collection.

    Args:
        action: e.g. task_accepted, lead_converted, promotion_approved
        entity_type: task | lead | client | promotion_request | join_request | invitation
        entity_id: ID of the primary entity
        user: ID of the profile performing the action
        details: free-form dict (reason, old_value, new_value, etc.)
        related: linked entity IDs (lead_id, client_id, task_id, etc.)
    """
    await db.event_log.insert_one({
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": details or {},
        "related": related or {},
        "created_at": now_iso()
    })


async def list_events(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    skip: int = 0
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if action:
        query["action"] = action
    if entity_type:
        query["entity_type"] = entity_type
    if entity_id:
        query["$or"] = [
            {"entity_id": entity_id},
            {"related.task_id": entity_id},
            {"related.lead_id": entity_id},
            {"related.client_id": entity_id},
        ]

    events: List[dict] = await db.event_log.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.event_log.count_documents(query)

    return {"events": events, "total": total, "limit": limit, "skip": skip}
