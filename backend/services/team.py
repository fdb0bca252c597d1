"""
CRM - Team administration
Invitations (admin -> invite link -> account) and self-service join requests.
New accounts are always members; admins only come from promotion.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from pymongo import ReturnDocument

from config import db, generate_token, hash_password, to_iso, parse_iso, utc_now
from services.errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from services.permissions import ROLE_MEMBER, ensure_admin
from services.event_logger import log_event

logger = logging.getLogger("team")

INVITATION_TTL_DAYS = 7
MIN_PASSWORD_LENGTH = 6


# ==================== PROFILES ====================

async def list_profiles() -> List[dict]:
    return await db.profiles.find(
        {}, {"_id": 0, "password_hash": 0}
    ).sort("created_at", 1).to_list(500)


async def create_profile(email: str, full_name: str, password: str, now: Optional[datetime] = None) -> dict:
    email = email.strip().lower()
    if await db.profiles.find_one({"email": email}, {"_id": 1}):
        raise ConflictError(f"An account already exists for {email}")

    profile = {
        "id": str(uuid.uuid4()),
        "email": email,
        "full_name": full_name,
        "role": ROLE_MEMBER,
        "status": "active",
        "avatar_url": None,
        "password_hash": hash_password(password),
        "created_at": to_iso(now or utc_now()),
    }
    await db.profiles.insert_one(dict(profile))
    profile.pop("password_hash")
    return profile


def _check_password(password: str, confirm_password: str) -> None:
    if not password:
        raise InvalidInputError("Missing fields: please fill in all required fields.")
    if password != confirm_password:
        raise InvalidInputError("Passwords don't match.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


# ==================== INVITATIONS ====================

async def create_invitation(email: str, actor: dict, now: Optional[datetime] = None) -> dict:
    ensure_admin(actor, "invite team members")
    now = now or utc_now()
    email = email.strip().lower()

    invitation = {
        "id": str(uuid.uuid4()),
        "email": email,
        "role": ROLE_MEMBER,
        "token": generate_token(),
        "status": "pending",
        "invited_by": actor["id"],
        "expires_at": to_iso(now + timedelta(days=INVITATION_TTL_DAYS)),
        "created_at": to_iso(now),
    }
    await db.invitations.insert_one(dict(invitation))

    logger.info(f"[TEAM] invitation for {email} by {actor['id']}")
    await log_event("invitation_created", "invitation", invitation["id"], user=actor["id"],
                    details={"email": email})
    return invitation


async def get_valid_invitation(token: str, now: Optional[datetime] = None) -> dict:
    if not token:
        raise InvalidInputError("Invalid invitation link. No token provided.")
    invitation = await db.invitations.find_one({"token": token}, {"_id": 0})
    if not invitation:
        raise NotFoundError("Invalid or expired invitation link.")
    if invitation["status"] != "pending":
        raise InvalidStateError("This invitation has already been used.")
    if parse_iso(invitation["expires_at"]) < (now or utc_now()):
        raise InvalidStateError("This invitation has expired.")
    return invitation


async def accept_invitation(
    token: str,
    full_name: str,
    password: str,
    confirm_password: str,
    now: Optional[datetime] = None
) -> dict:
    now = now or utc_now()
    invitation = await get_valid_invitation(token, now)
    if not (full_name or "").strip():
        raise InvalidInputError("Missing fields: please fill in all required fields.")
    _check_password(password, confirm_password)

    # claim first so a token can only ever create one account
    claimed = await db.invitations.find_one_and_update(
        {"id": invitation["id"], "status": "pending"},
        {"$set": {"status": "accepted", "accepted_at": to_iso(now)}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if claimed is None:
        raise InvalidStateError("This invitation has already been used.")

    try:
        profile = await create_profile(invitation["email"], full_name.strip(), password, now)
    except Exception:
        await db.invitations.update_one(
            {"id": invitation["id"]},
            {"$set": {"status": "pending", "accepted_at": None}}
        )
        raise

    logger.info(f"[TEAM] invitation {invitation['id']} accepted -> profile {profile['id']}")
    await log_event("invitation_accepted", "invitation", invitation["id"], user=profile["id"],
                    related={"user_id": profile["id"]})
    return profile


# ==================== JOIN REQUESTS ====================

async def submit_join_request(email: str, full_name: str, message: Optional[str] = None,
                              now: Optional[datetime] = None) -> dict:
    email = email.strip().lower()
    if await db.join_requests.find_one({"email": email, "status": "pending"}, {"_id": 1}):
        raise ConflictError("A join request for this email is already pending")

    now_str = to_iso(now or utc_now())
    request = {
        "id": str(uuid.uuid4()),
        "email": email,
        "full_name": full_name,
        "message": message,
        "status": "pending",
        "approved_by": None,
        "rejected_by": None,
        "rejection_reason": None,
        "created_at": now_str,
        "updated_at": now_str,
    }
    await db.join_requests.insert_one(dict(request))
    logger.info(f"[TEAM] join request from {email}")
    await log_event("join_request_submitted", "join_request", request["id"], details={"email": email})
    return request


async def list_join_requests(status: Optional[str] = "pending") -> List[dict]:
    query = {"status": status} if status else {}
    return await db.join_requests.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)


async def _resolve_join_request(request_id: str, updates: dict) -> dict:
    resolved = await db.join_requests.find_one_and_update(
        {"id": request_id, "status": "pending"},
        {"$set": updates},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if resolved is None:
        existing = await db.join_requests.find_one({"id": request_id}, {"_id": 0})
        if not existing:
            raise NotFoundError(f"Join request {request_id} not found")
        raise InvalidStateError(f"Join request already {existing['status']}")
    return resolved


async def approve_join_request(request_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    ensure_admin(actor, "approve join requests")
    resolved = await _resolve_join_request(request_id, {
        "status": "approved",
        "approved_by": actor["id"],
        "updated_at": to_iso(now or utc_now()),
    })
    logger.info(f"[TEAM] join request {request_id} approved by {actor['id']}")
    await log_event("join_request_approved", "join_request", request_id, user=actor["id"])
    return resolved


async def reject_join_request(request_id: str, actor: dict, reason: Optional[str] = None,
                              now: Optional[datetime] = None) -> dict:
    ensure_admin(actor, "reject join requests")
    resolved = await _resolve_join_request(request_id, {
        "status": "rejected",
        "rejected_by": actor["id"],
        "rejection_reason": (reason or "").strip() or None,
        "updated_at": to_iso(now or utc_now()),
    })
    logger.info(f"[TEAM] join request {request_id} rejected by {actor['id']}")
    await log_event("join_request_rejected", "join_request", request_id, user=actor["id"],
                    details={"reason": resolved["rejection_reason"]})
    return resolved


async def signup_from_join_request(email: str, password: str, confirm_password: str,
                                   now: Optional[datetime] = None) -> dict:
    """Account creation for an approved join request"""
    email = (email or "").strip().lower()
    request = await db.join_requests.find_one(
        {"email": email, "status": "approved"}, {"_id": 0}, sort=[("updated_at", -1)]
    )
    if not request:
        raise InvalidStateError("No approved join request for this email")
    _check_password(password, confirm_password)

    profile = await create_profile(email, request.get("full_name") or email, password, now)
    logger.info(f"[TEAM] account created from join request {request['id']}")
    await log_event("join_request_signup", "join_request", request["id"], user=profile["id"],
                    related={"user_id": profile["id"]})
    return profile
