"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Task Model                                                            ║
║                                                                              ║
║  LIFECYCLE:                                                                  ║
║  pending/acceptance=pending -> pending/accepted -> in_progress -> completed  ║
║  pending/acceptance=declined is terminal                                     ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - status in (in_progress, completed) IMPLIES acceptance_status=accepted     ║
║  - created_at <= accepted_at/declined_at <= started_at <= completed_at       ║
║  - related_lead_id and related_client_id are never both set                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskType(str, Enum):
    TASK = "task"
    REVISION = "revision"
    REVIEW = "review"
    DELIVERY = "delivery"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AcceptanceStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class TaskCreate(BaseModel):
    """Task submitted by an assigner (possibly for themselves)"""
    title: str
    description: Optional[str] = None
    assigned_to: str
    due_date: str
    task_type: TaskType = TaskType.TASK
    priority: Priority = Priority.NORMAL
    related_lead_id: Optional[str] = None
    related_client_id: Optional[str] = None
    reminder_interval_hours: Optional[int] = Field(default=None, ge=1)
    max_reminders: Optional[int] = Field(default=None, ge=0)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("Title is required")
        return v.strip()

    @model_validator(mode="after")
    def validate_relation(self):
        if self.related_lead_id and self.related_client_id:
            raise ValueError("A task links to a lead or a client, never both")
        return self


class TaskDecline(BaseModel):
    reason: Optional[str] = None


class TaskComplete(BaseModel):
    note: Optional[str] = None


class TaskCommentCreate(BaseModel):
    comment: str


class TaskDocument(BaseModel):
    """Full task as stored"""
    id: str
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    related_lead_id: Optional[str] = None
    related_client_id: Optional[str] = None
    due_date: str
    status: TaskStatus = TaskStatus.PENDING
    task_type: TaskType = TaskType.TASK
    priority: Priority = Priority.NORMAL
    acceptance_status: AcceptanceStatus = AcceptanceStatus.PENDING
    accepted_at: Optional[str] = None
    declined_at: Optional[str] = None
    decline_reason: Optional[str] = None
    completion_note: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    revision_count: int = 0
    revision_of: Optional[str] = None

    # Reminders
    reminder_interval_hours: int = 5
    next_reminder_at: Optional[str] = None
    reminders_sent: int = 0
    max_reminders: int = 6

    created_at: str = ""
    updated_at: str = ""
