"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Lead Model                                                            ║
║                                                                              ║
║  RULES:                                                                      ║
║  1. status=converted removes the lead from the active pipeline               ║
║  2. Call activity is an append-only ordered history (never rewritten)        ║
║  3. "Overdue"/"needs call" are computed on read, never stored                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from .task import Priority


class LeadStatus(str, Enum):
    NOT_INTERESTED = "not_interested"
    NOT_SURE = "not_sure"
    INTERESTED = "interested"
    CONVERTED = "converted"


class CallOutcome(str, Enum):
    """Tags used in the lead history"""
    CALL_BACK = "call_back"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    NOT_SURE = "not_sure"
    NO_RESPONSE = "no_response"
    CALL_COMPLETED = "call_completed"
    NOTE = "note"


class LeadCreate(BaseModel):
    """Manual lead entry"""
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    business_name: Optional[str] = None
    business_category: Optional[str] = None
    address: Optional[str] = None
    assigned_to: Optional[str] = None
    source: Optional[str] = None
    status: LeadStatus = LeadStatus.NOT_SURE
    interest_level: int = Field(default=50, ge=0, le=100)
    priority: Priority = Priority.NORMAL
    next_follow_up: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v == LeadStatus.CONVERTED:
            raise ValueError("Leads are converted through the convert action")
        return v


class LeadPriorityUpdate(BaseModel):
    priority: Priority


class LogCall(BaseModel):
    """Free-form call logging from the lead detail"""
    outcome: CallOutcome = CallOutcome.CALL_BACK
    summary: str
    interest_level: Optional[int] = Field(default=None, ge=0, le=100)
    next_follow_up: Optional[str] = None


class MarkCallDone(BaseModel):
    """Structured call completion from the overdue banner: both fields mandatory"""
    comment: str = ""
    next_call_at: Optional[str] = None
