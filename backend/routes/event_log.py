"""
CRM - Routes Event Log (audit trail)
"""

from fastapi import APIRouter, Depends
from typing import Optional

from routes.auth import require_admin
from services.event_logger import list_events as query_events

router = APIRouter(prefix="/event-log", tags=["EventLog"])


@router.get("")
async def list_events(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    skip: int = 0,
    current_user: dict = Depends(require_admin)
):
    """Events with filters; entity_id also matches related ids"""
    return await query_events(action, entity_type, entity_id, min(limit, 500), skip)
