"""
CRM - Auth & profile models
Two roles: member and admin. Admins are only created through promotion.
"""

from pydantic import BaseModel
from typing import Optional


class UserLogin(BaseModel):
    email: str
    password: str


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = "member"
    status: str = "active"
    avatar_url: Optional[str] = None
    created_at: str = ""
