"""
CRM - Routes Leads
Pipeline listing with follow-up classification, call logging and conversion.
"""

from fastapi import APIRouter, Depends
from typing import Optional
from pydantic import BaseModel

from models.lead import LeadCreate, LeadPriorityUpdate, LogCall, MarkCallDone
from routes.auth import get_current_user
from services import lead_calls
from services.financials import reporting_tz
from services.lead_scheduler import (
    annotate_leads,
    classify_lead,
    sort_leads_for_calling,
    summarize_pipeline,
)

router = APIRouter(prefix="/leads", tags=["Leads"])


class LeadDeleteConfirm(BaseModel):
    confirm: str = ""


@router.get("")
async def list_leads(
    include_converted: bool = False,
    assigned_to: Optional[str] = None,
    needs_call: Optional[bool] = None,
    user: dict = Depends(get_current_user)
):
    """Leads in calling order, each with its follow_up classification"""
    leads = await lead_calls.list_leads(include_converted, assigned_to)
    leads = annotate_leads(sort_leads_for_calling(leads))
    if needs_call is not None:
        leads = [lead for lead in leads if lead["follow_up"]["needs_call"] == needs_call]
    return {"leads": leads, "count": len(leads)}


@router.get("/summary")
async def pipeline_summary(user: dict = Depends(get_current_user)):
    leads = await lead_calls.list_leads()
    return summarize_pipeline(leads, tz=reporting_tz())


@router.post("")
async def create_lead(data: LeadCreate, user: dict = Depends(get_current_user)):
    return await lead_calls.create_lead(data.model_dump(mode="json"), user)


@router.get("/{lead_id}")
async def get_lead(lead_id: str, user: dict = Depends(get_current_user)):
    lead = await lead_calls.get_lead(lead_id)
    return {**lead, "follow_up": classify_lead(lead)}


@router.put("/{lead_id}/priority")
async def update_priority(lead_id: str, data: LeadPriorityUpdate, user: dict = Depends(get_current_user)):
    return await lead_calls.update_lead_priority(lead_id, data.priority, user)


@router.post("/{lead_id}/calls")
async def log_call(lead_id: str, data: LogCall, user: dict = Depends(get_current_user)):
    return await lead_calls.log_call(
        lead_id, user,
        outcome=data.outcome,
        summary=data.summary,
        interest_level=data.interest_level,
        next_follow_up=data.next_follow_up,
    )


@router.post("/{lead_id}/call-done")
async def mark_call_done(lead_id: str, data: MarkCallDone, user: dict = Depends(get_current_user)):
    return await lead_calls.mark_call_done(lead_id, user, data.comment, data.next_call_at)


@router.post("/{lead_id}/no-response")
async def no_response(lead_id: str, user: dict = Depends(get_current_user)):
    return await lead_calls.record_no_response(lead_id, user)


@router.post("/{lead_id}/convert")
async def convert_lead(lead_id: str, user: dict = Depends(get_current_user)):
    return await lead_calls.convert_to_client(lead_id, user)


@router.delete("/{lead_id}")
async def delete_lead(lead_id: str, data: LeadDeleteConfirm, user: dict = Depends(get_current_user)):
    """Admin only. Body: {"confirm": "CONFIRM"}"""
    await lead_calls.delete_lead(lead_id, user, data.confirm)
    return {"success": True}
