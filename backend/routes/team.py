"""
CRM - Routes Team
Profiles, invitations, join requests and admin promotion votes.
Invitation accept and join request submission are public.
"""

from fastapi import APIRouter, Depends
from typing import Optional
from pydantic import BaseModel

from models.team import (
    InvitationCreate,
    InvitationAccept,
    JoinRequestCreate,
    JoinRequestReject,
    PromotionRequestCreate,
    PromotionVote,
)
from routes.auth import get_current_user, require_admin
from services import team, promotion_consensus

router = APIRouter(prefix="/team", tags=["Team"])


class JoinSignup(BaseModel):
    email: str
    password: str
    confirm_password: str


# ==================== PROFILES ====================

@router.get("/profiles")
async def list_profiles(user: dict = Depends(get_current_user)):
    profiles = await team.list_profiles()
    return {"profiles": profiles}


# ==================== INVITATIONS ====================

@router.post("/invitations")
async def create_invitation(data: InvitationCreate, user: dict = Depends(require_admin)):
    return await team.create_invitation(data.email, user)


@router.get("/invitations/{token}")
async def check_invitation(token: str):
    invitation = await team.get_valid_invitation(token)
    return {"email": invitation["email"], "role": invitation["role"], "expires_at": invitation["expires_at"]}


@router.post("/invitations/accept")
async def accept_invitation(data: InvitationAccept):
    return await team.accept_invitation(data.token, data.full_name, data.password, data.confirm_password)


# ==================== JOIN REQUESTS ====================

@router.post("/join-requests")
async def submit_join_request(data: JoinRequestCreate):
    return await team.submit_join_request(data.email, data.full_name, data.message)


@router.post("/join-requests/signup")
async def signup(data: JoinSignup):
    return await team.signup_from_join_request(data.email, data.password, data.confirm_password)


@router.get("/join-requests")
async def list_join_requests(status: Optional[str] = "pending", user: dict = Depends(require_admin)):
    requests = await team.list_join_requests(status)
    return {"requests": requests}


@router.post("/join-requests/{request_id}/approve")
async def approve_join_request(request_id: str, user: dict = Depends(require_admin)):
    return await team.approve_join_request(request_id, user)


@router.post("/join-requests/{request_id}/reject")
async def reject_join_request(request_id: str, data: JoinRequestReject, user: dict = Depends(require_admin)):
    return await team.reject_join_request(request_id, user, data.reason)


# ==================== PROMOTIONS ====================

@router.post("/promotions")
async def request_promotion(data: PromotionRequestCreate, user: dict = Depends(require_admin)):
    return await promotion_consensus.create_promotion_request(data.user_id, user)


@router.get("/promotions")
async def list_promotions(user: dict = Depends(require_admin)):
    requests = await promotion_consensus.list_pending_requests()
    return {"requests": requests}


@router.post("/promotions/{request_id}/vote")
async def vote(request_id: str, data: PromotionVote, user: dict = Depends(require_admin)):
    return await promotion_consensus.cast_vote(request_id, user, data.approve)
