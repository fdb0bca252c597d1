"""
CRM - Team administration models
Invitations, self-service join requests, admin promotion votes.
"""

from pydantic import BaseModel, field_validator
from typing import Optional


class InvitationCreate(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = (v or "").strip().lower()
        if "@" not in v:
            raise ValueError(f"Invalid email: {v}")
        return v


class InvitationAccept(BaseModel):
    token: str
    full_name: str
    password: str
    confirm_password: str

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Full name is required")
        return v.strip()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class JoinRequestCreate(BaseModel):
    email: str
    full_name: str
    message: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = (v or "").strip().lower()
        if "@" not in v:
            raise ValueError(f"Invalid email: {v}")
        return v


class JoinRequestReject(BaseModel):
    reason: Optional[str] = None


class PromotionRequestCreate(BaseModel):
    user_id: str


class PromotionVote(BaseModel):
    approve: bool
