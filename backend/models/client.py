"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Client & Income Record Models                                         ║
║                                                                              ║
║  RULES:                                                                      ║
║  - paid_amount <= project_value                                              ║
║  - Marking delivered requires project_value > 0                              ║
║  - An income record is a snapshot taken at delivery; it survives the client  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, List
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class ClientStatus(str, Enum):
    ONBOARDING = "onboarding"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    DELIVERED = "delivered"
    CLOSED = "closed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class ClientCreate(BaseModel):
    """Standalone client (not converted from a lead)"""
    business_name: str
    owner_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    services: List[str] = []
    project_value: float = Field(default=0, ge=0)


class ClientStatusUpdate(BaseModel):
    status: ClientStatus


class PaymentUpdate(BaseModel):
    """
    project_value is optional: when omitted the client's current value is used.
    paid_amount is only read for partial payments.
    """
    payment_status: PaymentStatus
    project_value: Optional[float] = Field(default=None, ge=0)
    paid_amount: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_partial(self):
        if self.payment_status == PaymentStatus.PARTIAL and self.paid_amount is None:
            raise ValueError("paid_amount is required for a partial payment")
        return self


class DeliverClient(BaseModel):
    delivery_notes: Optional[str] = None


class NewProject(BaseModel):
    services: List[str] = []
    project_value: float = Field(default=0, ge=0)


class ClientDocument(BaseModel):
    id: str
    lead_id: Optional[str] = None
    business_name: str
    owner_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    services: List[str] = []
    start_date: Optional[str] = None
    delivery_date: Optional[str] = None
    delivered_by: Optional[str] = None
    status: ClientStatus = ClientStatus.ONBOARDING
    delivery_notes: Optional[str] = None
    project_value: float = 0
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_amount: float = 0
    payment_date: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
