"""
CRM - Routes Auth
Login / Logout / Session. Every other route depends on get_current_user.
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import timedelta
import logging

import config
from models.auth import UserLogin, ProfileResponse
from config import db, hash_password, generate_token, now_iso, to_iso, utc_now
from services.event_logger import log_event
from services.permissions import is_admin

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Profile of the bearer token's session."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expired")

    user = await db.profiles.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password_hash": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account disabled")

    return user


async def require_admin(user: dict = Depends(get_current_user)):
    """Admin access."""
    if not is_admin(user):
        logger.warning(f"[PERMISSION_DENIED] user={user.get('email')} role={user.get('role')}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin):
    user = await db.profiles.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password_hash") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account disabled")

    token = generate_token()
    expires_at = to_iso(utc_now() + timedelta(days=config.SESSION_TTL_DAYS))

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    await log_event("login", "profile", user["id"], user=user["id"])

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "full_name": user.get("full_name"),
            "role": user.get("role", "member"),
        }
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me", response_model=ProfileResponse)
async def get_me(user: dict = Depends(get_current_user)):
    return user
