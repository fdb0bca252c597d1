"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Promotion Consensus Engine                                            ║
║                                                                              ║
║  pending -> approved (TERMINAL). A "no" vote is recorded, never terminal.    ║
║                                                                              ║
║  RULES:                                                                      ║
║  1. One pending request per target user                                      ║
║  2. One vote per (request, admin): a later vote overwrites the earlier one   ║
║  3. approved_count >= threshold -> role=admin AND request=approved           ║
║  4. Threshold: frozen at creation (default) or live admin count              ║
║     (PROMOTION_THRESHOLD_MODE=live)                                          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import config
from config import db, to_iso, utc_now
from services.errors import ConflictError, InvalidStateError, NotFoundError
from services.permissions import ROLE_ADMIN, ensure_admin
from services.event_logger import log_event

logger = logging.getLogger("promotion_consensus")

THRESHOLD_FROZEN = "frozen"
THRESHOLD_LIVE = "live"


def resolve_threshold(request: dict, live_admin_count: int, mode: Optional[str] = None) -> int:
    """Number of approving votes the request needs right now"""
    mode = mode or config.PROMOTION_THRESHOLD_MODE
    if mode == THRESHOLD_LIVE or not request.get("required_approvals"):
        return live_admin_count
    return request["required_approvals"]


def has_consensus(approved_count: int, threshold: int) -> bool:
    return threshold > 0 and approved_count >= threshold


async def count_admins() -> int:
    return await db.profiles.count_documents({"role": ROLE_ADMIN})


async def create_promotion_request(target_user_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    ensure_admin(actor, "request a promotion")

    target = await db.profiles.find_one({"id": target_user_id}, {"_id": 0})
    if not target:
        raise NotFoundError(f"User {target_user_id} not found")
    if target.get("role") == ROLE_ADMIN:
        raise InvalidStateError("User is already an admin")

    existing = await db.promotion_requests.find_one(
        {"user_id": target_user_id, "status": "pending"}, {"_id": 1}
    )
    if existing:
        raise ConflictError("There's already a pending promotion request for this user")

    now_str = to_iso(now or utc_now())
    request = {
        "id": str(uuid.uuid4()),
        "user_id": target_user_id,
        "requested_by": actor["id"],
        "status": "pending",
        "required_approvals": await count_admins(),
        "approved_at": None,
        "created_at": now_str,
        "updated_at": now_str,
    }
    try:
        await db.promotion_requests.insert_one(dict(request))
    except DuplicateKeyError:
        # partial unique index on pending requests per user
        raise ConflictError("There's already a pending promotion request for this user")

    logger.info(
        f"[PROMOTION] request={request['id']} target={target_user_id} "
        f"by={actor['id']} required={request['required_approvals']}"
    )
    await log_event("promotion_requested", "promotion_request", request["id"], user=actor["id"],
                    details={"required_approvals": request["required_approvals"]},
                    related={"user_id": target_user_id})
    return request


async def _promote(request: dict, actor: dict, now_str: str) -> dict:
    """
    Claim the request (pending -> approved), then promote the target.
    Only one concurrent vote can win the claim.
    """
    claimed = await db.promotion_requests.find_one_and_update(
        {"id": request["id"], "status": "pending"},
        {"$set": {"status": "approved", "approved_at": now_str, "updated_at": now_str}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER
    )
    if claimed is None:
        # another vote already resolved it
        return await db.promotion_requests.find_one({"id": request["id"]}, {"_id": 0})

    try:
        result = await db.profiles.update_one(
            {"id": request["user_id"]},
            {"$set": {"role": ROLE_ADMIN, "updated_at": now_str}}
        )
        if result.matched_count == 0:
            raise NotFoundError(f"User {request['user_id']} not found")
    except Exception:
        await db.promotion_requests.update_one(
            {"id": request["id"]},
            {"$set": {"status": "pending", "approved_at": None, "updated_at": now_str}}
        )
        logger.error(f"[PROMOTION] role update failed, request={request['id']} back to pending")
        raise

    logger.info(f"[PROMOTION] request={request['id']} approved, user={request['user_id']} is now admin")
    await log_event("promotion_approved", "promotion_request", request["id"], user=actor["id"],
                    related={"user_id": request["user_id"]})
    return claimed


async def cast_vote(request_id: str, actor: dict, approve: bool, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Record (or overwrite) the actor's vote and resolve the request if the
    threshold is reached.
    """
    ensure_admin(actor, "vote on a promotion")

    request = await db.promotion_requests.find_one({"id": request_id}, {"_id": 0})
    if not request:
        raise NotFoundError(f"Promotion request {request_id} not found")
    if request["status"] != "pending":
        raise InvalidStateError(f"Promotion request already {request['status']}")

    now_str = to_iso(now or utc_now())
    await db.promotion_approvals.update_one(
        {"request_id": request_id, "admin_id": actor["id"]},
        {
            "$set": {"approved": bool(approve), "updated_at": now_str},
            "$setOnInsert": {"id": str(uuid.uuid4()), "created_at": now_str},
        },
        upsert=True
    )

    approved_count = await db.promotion_approvals.count_documents(
        {"request_id": request_id, "approved": True}
    )
    threshold = resolve_threshold(request, await count_admins())

    logger.info(
        f"[PROMOTION] vote request={request_id} admin={actor['id']} approve={approve} "
        f"-> {approved_count}/{threshold}"
    )
    await log_event("promotion_vote", "promotion_request", request_id, user=actor["id"],
                    details={"approve": bool(approve), "approved_count": approved_count,
                             "threshold": threshold})

    promoted = False
    if has_consensus(approved_count, threshold):
        request = await _promote(request, actor, now_str)
        promoted = request.get("status") == "approved"

    return {
        "request": request,
        "approved_count": approved_count,
        "threshold": threshold,
        "promoted": promoted,
    }


async def list_pending_requests() -> List[dict]:
    """Pending requests with their votes and current tally"""
    requests = await db.promotion_requests.find(
        {"status": "pending"}, {"_id": 0}
    ).sort("created_at", -1).to_list(200)

    admin_count = await count_admins()
    for request in requests:
        votes = await db.promotion_approvals.find(
            {"request_id": request["id"]}, {"_id": 0, "admin_id": 1, "approved": 1}
        ).to_list(200)
        request["approvals"] = votes
        request["approved_count"] = sum(1 for v in votes if v.get("approved"))
        request["threshold"] = resolve_threshold(request, admin_count)
    return requests
