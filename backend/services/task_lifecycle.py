"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Task Lifecycle Engine                                                 ║
║                                                                              ║
║  STRICT TRANSITION RULES                                                     ║
║                                                                              ║
║  create  -> acceptance=pending (or accepted when assigned to self)           ║
║  accept  -> assignee only, from acceptance=pending                           ║
║  decline -> assignee only, from acceptance=pending (TERMINAL)                ║
║  start   -> admin or assignee, from status=pending + accepted                ║
║  complete-> admin or assignee, from status=in_progress                       ║
║  revision-> admin only, from status=completed, spawns a NEW task             ║
║                                                                              ║
║  SAFETY INVARIANTS:                                                          ║
║  - status in (in_progress, completed) IMPLIES acceptance_status=accepted     ║
║  - created <= accepted/declined <= started <= completed                      ║
║  - a rejected transition never writes                                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

import config
from config import db, to_iso, parse_iso, utc_now
from services.errors import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from services.permissions import (
    can_add_task_comment,
    can_delete_task_comment,
    can_view_task,
    can_view_task_comments,
    ensure_admin,
    ensure_can_modify_task,
)
from services.event_logger import log_event
from services.notification_dispatcher import notify_task

logger = logging.getLogger("task_lifecycle")


# ════════════════════════════════════════════════════════════════════════════
# VALID STATE TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

VALID_STATUS_TRANSITIONS = {
    "pending": ["in_progress"],
    "in_progress": ["completed"],
    "completed": [],  # TERMINAL - revisions are new tasks
}

VALID_ACCEPTANCE_TRANSITIONS = {
    "pending": ["accepted", "declined"],
    "accepted": [],
    "declined": [],  # TERMINAL
}

TASK_TYPES = ["task", "revision", "review", "delivery"]
PRIORITIES = ["low", "normal", "high", "urgent"]

REVISION_PREFIX = "Revision: "
REVISION_DUE_HOURS = 24

TIMESTAMP_ORDER = ["created_at", "accepted_at", "started_at", "completed_at"]


# ════════════════════════════════════════════════════════════════════════════
# INVARIANT CHECKS
# ════════════════════════════════════════════════════════════════════════════

def check_task_invariants(task: dict) -> bool:
    """
    Raises InvalidStateError when a task document breaks a lifecycle invariant.
    """
    status = task.get("status")
    acceptance = task.get("acceptance_status")

    if status in ("in_progress", "completed") and acceptance != "accepted":
        raise InvalidStateError(
            f"INVARIANT VIOLATION: status={status} requires acceptance_status=accepted"
        )

    if acceptance == "declined" and status != "pending":
        raise InvalidStateError("INVARIANT VIOLATION: a declined task cannot leave pending")

    if task.get("related_lead_id") and task.get("related_client_id"):
        raise InvalidStateError("INVARIANT VIOLATION: task linked to both a lead and a client")

    stamps = [parse_iso(task.get(k)) for k in TIMESTAMP_ORDER]
    declined_at = parse_iso(task.get("declined_at"))
    created_at = stamps[0]
    if declined_at and created_at and declined_at < created_at:
        raise InvalidStateError("INVARIANT VIOLATION: declined_at before created_at")

    present = [(k, s) for k, s in zip(TIMESTAMP_ORDER, stamps) if s is not None]
    for (prev_key, prev), (key, current) in zip(present, present[1:]):
        if current < prev:
            raise InvalidStateError(f"INVARIANT VIOLATION: {key} before {prev_key}")

    return True


def _not_before(now: datetime, *earlier: Optional[str]) -> datetime:
    """Clamp a transition timestamp so it never precedes the previous stamps"""
    stamp = now
    for value in earlier:
        previous = parse_iso(value)
        if previous and previous > stamp:
            stamp = previous
    return stamp


# ════════════════════════════════════════════════════════════════════════════
# PURE TRANSITION PLANNING (no I/O)
# ════════════════════════════════════════════════════════════════════════════

def build_task(data: Dict[str, Any], assigner: dict, now: Optional[datetime] = None) -> dict:
    """
    Build a new task document for an assigner.
    Self-assignment skips the acceptance gate.
    """
    now = now or utc_now()

    title = (data.get("title") or "").strip()
    if not title:
        raise InvalidInputError("Title is required")
    if not data.get("due_date"):
        raise InvalidInputError("Due date is required")
    if not data.get("assigned_to"):
        raise InvalidInputError("Assignee is required")
    if data.get("related_lead_id") and data.get("related_client_id"):
        raise InvalidInputError("A task links to a lead or a client, never both")

    task_type = _enum_value(data.get("task_type") or "task")
    priority = _enum_value(data.get("priority") or "normal")
    if task_type not in TASK_TYPES:
        raise InvalidInputError(f"Invalid task type: {task_type}")
    if priority not in PRIORITIES:
        raise InvalidInputError(f"Invalid priority: {priority}")

    try:
        due = parse_iso(data["due_date"])
    except ValueError:
        raise InvalidInputError(f"Invalid due date: {data['due_date']}")

    now_str = to_iso(now)
    self_assigned = data["assigned_to"] == assigner.get("id")
    max_reminders = data["max_reminders"] if data.get("max_reminders") is not None else config.TASK_MAX_REMINDERS

    return {
        "id": str(uuid.uuid4()),
        "title": title,
        "description": data.get("description") or None,
        "assigned_to": data["assigned_to"],
        "assigned_by": assigner.get("id"),
        "related_lead_id": data.get("related_lead_id") or None,
        "related_client_id": data.get("related_client_id") or None,
        "due_date": to_iso(due),
        "status": "pending",
        "task_type": task_type,
        "priority": priority,
        "acceptance_status": "accepted" if self_assigned else "pending",
        "accepted_at": now_str if self_assigned else None,
        "declined_at": None,
        "decline_reason": None,
        "completion_note": None,
        "started_at": None,
        "completed_at": None,
        "revision_count": int(data.get("revision_count") or 0),
        "revision_of": data.get("revision_of"),
        # First reminder is due immediately
        "reminder_interval_hours": data.get("reminder_interval_hours") or config.TASK_REMINDER_INTERVAL_HOURS,
        "next_reminder_at": now_str if max_reminders > 0 else None,
        "reminders_sent": 0,
        "max_reminders": max_reminders,
        "created_at": now_str,
        "updated_at": now_str,
    }


def build_revision_task(source: dict, actor: dict, now: Optional[datetime] = None) -> dict:
    """New high-priority revision task for the original assignee, due in 24h."""
    ensure_admin(actor, "request a revision")
    if source.get("status") != "completed":
        raise InvalidStateError("Only completed tasks can be sent back for revision.")

    now = now or utc_now()
    data = {
        "title": f"{REVISION_PREFIX}{source['title']}",
        "description": f"Revision requested for: {source['title']}",
        "assigned_to": source.get("assigned_to"),
        "related_lead_id": source.get("related_lead_id"),
        "related_client_id": source.get("related_client_id"),
        "due_date": to_iso(now + timedelta(hours=REVISION_DUE_HOURS)),
        "task_type": "revision",
        "priority": "high",
        "revision_count": (source.get("revision_count") or 0) + 1,
        "revision_of": source["id"],
        "reminder_interval_hours": source.get("reminder_interval_hours"),
        "max_reminders": source.get("max_reminders"),
    }
    return build_task(data, actor, now)


def plan_accept(task: dict, actor: dict, now: Optional[datetime] = None) -> dict:
    _ensure_assignee(task, actor, "accept")
    _ensure_acceptance_pending(task)
    stamp = _not_before(now or utc_now(), task.get("created_at"))
    return {"acceptance_status": "accepted", "accepted_at": to_iso(stamp)}


def plan_decline(task: dict, actor: dict, reason: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    _ensure_assignee(task, actor, "decline")
    _ensure_acceptance_pending(task)
    stamp = _not_before(now or utc_now(), task.get("created_at"))
    reason = (reason or "").strip() or None
    return {"acceptance_status": "declined", "declined_at": to_iso(stamp), "decline_reason": reason}


def plan_start(task: dict, actor: dict, now: Optional[datetime] = None) -> dict:
    ensure_can_modify_task(actor, task, "start")

    acceptance = task.get("acceptance_status")
    if acceptance == "pending":
        raise InvalidStateError("Task not accepted: please accept the task first before starting.")
    if acceptance == "declined":
        raise InvalidStateError("Task declined: this task was declined and cannot be started.")
    if task.get("status") != "pending":
        raise InvalidStateError(f"Cannot start a task that is {task.get('status')}.")

    stamp = _not_before(now or utc_now(), task.get("created_at"), task.get("accepted_at"))
    return {"status": "in_progress", "started_at": to_iso(stamp)}


def plan_complete(task: dict, actor: dict, note: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    ensure_can_modify_task(actor, task, "complete")

    if task.get("acceptance_status") == "declined":
        raise InvalidStateError("Task declined: this task was declined and cannot be completed.")
    if task.get("status") != "in_progress":
        raise InvalidStateError(f"Only in-progress tasks can be completed (task is {task.get('status')}).")

    stamp = _not_before(
        now or utc_now(), task.get("created_at"), task.get("accepted_at"), task.get("started_at")
    )
    note = (note or "").strip() or None
    return {"status": "completed", "completed_at": to_iso(stamp), "completion_note": note}


def _ensure_assignee(task: dict, actor: dict, action: str) -> None:
    if not actor or task.get("assigned_to") != actor.get("id"):
        logger.warning(f"[PERMISSION_DENIED] user={(actor or {}).get('id')} action={action} task={task.get('id')}")
        raise PermissionDeniedError(f"Only the assignee can {action} this task.")


def _ensure_acceptance_pending(task: dict) -> None:
    current = task.get("acceptance_status")
    if current != "pending":
        raise InvalidStateError(f"Task already {current}.")


def _enum_value(value) -> str:
    return getattr(value, "value", value)


# ════════════════════════════════════════════════════════════════════════════
# BOARD VIEW
# ════════════════════════════════════════════════════════════════════════════

def is_task_overdue(task: dict, now: Optional[datetime] = None) -> bool:
    """Past due, not completed, and not still waiting for acceptance"""
    now = now or utc_now()
    due = parse_iso(task.get("due_date"))
    return bool(due) and due < now \
        and task.get("status") != "completed" \
        and task.get("acceptance_status") != "pending"


def compute_board_counts(tasks: List[dict], now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    return {
        "awaiting_acceptance": sum(1 for t in tasks if t.get("acceptance_status") == "pending"),
        "pending": sum(
            1 for t in tasks
            if t.get("status") == "pending" and t.get("acceptance_status") != "pending"
        ),
        "in_progress": sum(1 for t in tasks if t.get("status") == "in_progress"),
        "completed": sum(1 for t in tasks if t.get("status") == "completed"),
        "overdue": sum(1 for t in tasks if is_task_overdue(t, now)),
    }


# ════════════════════════════════════════════════════════════════════════════
# STORE-BACKED OPERATIONS
# ════════════════════════════════════════════════════════════════════════════

async def get_task(task_id: str) -> dict:
    task = await db.tasks.find_one({"id": task_id}, {"_id": 0})
    if not task:
        raise NotFoundError(f"Task {task_id} not found")
    return task


async def view_task(task_id: str, actor: dict) -> dict:
    task = await get_task(task_id)
    if not can_view_task(actor, task):
        logger.warning(f"[PERMISSION_DENIED] user={actor.get('id')} action=view task={task_id}")
        raise PermissionDeniedError("You can only view tasks assigned to you.")
    return task


async def _commit(task: dict, updates: Dict[str, Any]) -> dict:
    """
    Apply updates only if the task still has the state the guards saw.
    """
    merged = {**task, **updates}
    check_task_invariants(merged)

    updates = {**updates, "updated_at": to_iso(utc_now())}
    result = await db.tasks.update_one(
        {
            "id": task["id"],
            "status": task.get("status"),
            "acceptance_status": task.get("acceptance_status"),
        },
        {"$set": updates}
    )
    if result.matched_count == 0:
        raise InvalidStateError("Task changed since it was loaded, reload and retry.")

    return {**task, **updates}


def _assigner_name(user: dict) -> str:
    return user.get("full_name") or "Someone"


async def create_task(data: Dict[str, Any], assigner: dict, now: Optional[datetime] = None) -> dict:
    """
    Insert a task and emit a task_assigned intent (also for self-assignment).
    """
    task = build_task(data, assigner, now)

    if task["related_lead_id"] and not await db.leads.find_one({"id": task["related_lead_id"]}, {"_id": 1}):
        raise NotFoundError(f"Lead {task['related_lead_id']} not found")
    if task["related_client_id"] and not await db.clients.find_one({"id": task["related_client_id"]}, {"_id": 1}):
        raise NotFoundError(f"Client {task['related_client_id']} not found")
    if not await db.profiles.find_one({"id": task["assigned_to"]}, {"_id": 1}):
        raise NotFoundError(f"Assignee {task['assigned_to']} not found")

    await db.tasks.insert_one(dict(task))

    logger.info(
        f"[TASK] created task={task['id']} type={task['task_type']} "
        f"assigned_to={task['assigned_to']} by={task['assigned_by']} acceptance={task['acceptance_status']}"
    )
    await log_event(
        "task_created", "task", task["id"], user=assigner.get("id", "system"),
        details={"task_type": task["task_type"], "acceptance_status": task["acceptance_status"]},
        related={"lead_id": task["related_lead_id"], "client_id": task["related_client_id"],
                 "revision_of": task["revision_of"]},
    )

    await notify_task(task["id"], task["assigned_to"], _assigner_name(assigner), "task_assigned")
    return task


async def accept_task(task_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    task = await get_task(task_id)
    updated = await _commit(task, plan_accept(task, actor, now))
    logger.info(f"[TASK] task={task_id} accepted by {actor.get('id')}")
    await log_event("task_accepted", "task", task_id, user=actor.get("id"))
    return updated


async def decline_task(task_id: str, actor: dict, reason: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    task = await get_task(task_id)
    updated = await _commit(task, plan_decline(task, actor, reason, now))
    logger.info(f"[TASK] task={task_id} declined by {actor.get('id')} reason={updated['decline_reason']}")
    await log_event("task_declined", "task", task_id, user=actor.get("id"),
                    details={"reason": updated["decline_reason"]})
    return updated


async def start_task(task_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    task = await get_task(task_id)
    updated = await _commit(task, plan_start(task, actor, now))
    logger.info(f"[TASK] task={task_id} -> in_progress by {actor.get('id')}")
    await log_event("task_started", "task", task_id, user=actor.get("id"))
    return updated


async def complete_task(task_id: str, actor: dict, note: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    task = await get_task(task_id)
    updated = await _commit(task, plan_complete(task, actor, note, now))
    logger.info(f"[TASK] task={task_id} -> completed by {actor.get('id')}")
    await log_event("task_completed", "task", task_id, user=actor.get("id"),
                    details={"completion_note": updated["completion_note"]})
    return updated


async def request_revision(task_id: str, actor: dict, now: Optional[datetime] = None) -> dict:
    """Spawn a revision task; the completed source task is left untouched."""
    source = await get_task(task_id)
    revision = build_revision_task(source, actor, now)

    await db.tasks.insert_one(dict(revision))

    logger.info(
        f"[TASK] revision task={revision['id']} of={task_id} "
        f"revision_count={revision['revision_count']} assigned_to={revision['assigned_to']}"
    )
    await log_event(
        "task_revision_requested", "task", revision["id"], user=actor.get("id"),
        details={"revision_count": revision["revision_count"]},
        related={"task_id": task_id, "client_id": revision["related_client_id"],
                 "lead_id": revision["related_lead_id"]},
    )

    if revision["assigned_to"]:
        await notify_task(revision["id"], revision["assigned_to"], _assigner_name(actor), "task_assigned")
    return revision


async def delete_task(task_id: str, actor: dict) -> None:
    ensure_admin(actor, "delete a task")
    await get_task(task_id)
    await db.tasks.delete_one({"id": task_id})
    await db.task_comments.delete_many({"task_id": task_id})
    logger.info(f"[TASK] task={task_id} deleted by {actor.get('id')}")
    await log_event("task_deleted", "task", task_id, user=actor.get("id"))


async def list_tasks(
    assigned_to: Optional[str] = None,
    related_client_id: Optional[str] = None,
    related_lead_id: Optional[str] = None,
    status: Optional[str] = None
) -> List[dict]:
    query: Dict[str, Any] = {}
    if assigned_to:
        query["assigned_to"] = assigned_to
    if related_client_id:
        query["related_client_id"] = related_client_id
    if related_lead_id:
        query["related_lead_id"] = related_lead_id
    if status:
        query["status"] = status
    return await db.tasks.find(query, {"_id": 0}).sort("due_date", 1).to_list(1000)


async def list_pending_acceptance(user_id: str) -> List[dict]:
    """Tasks waiting for this user's accept/decline, newest first"""
    return await db.tasks.find(
        {"assigned_to": user_id, "acceptance_status": "pending"},
        {"_id": 0}
    ).sort("created_at", -1).to_list(200)


# ════════════════════════════════════════════════════════════════════════════
# COMMENTS
# ════════════════════════════════════════════════════════════════════════════

async def list_task_comments(task_id: str, actor: dict) -> List[dict]:
    task = await get_task(task_id)
    if not can_view_task_comments(actor, task):
        raise PermissionDeniedError("Only admins and the assignee can view comments on this task.")
    return await db.task_comments.find({"task_id": task_id}, {"_id": 0}).sort("created_at", 1).to_list(500)


async def add_task_comment(task_id: str, actor: dict, text: str) -> dict:
    text = (text or "").strip()
    if not text:
        raise InvalidInputError("Comment required: please enter a comment.")

    task = await get_task(task_id)
    if not can_add_task_comment(actor, task):
        raise PermissionDeniedError("Only the assignee can comment, once the task is completed.")

    now_str = to_iso(utc_now())
    comment = {
        "id": str(uuid.uuid4()),
        "task_id": task_id,
        "user_id": actor["id"],
        "comment": text,
        "created_at": now_str,
        "updated_at": now_str,
    }
    await db.task_comments.insert_one(dict(comment))
    logger.info(f"[TASK] comment added task={task_id} by {actor['id']}")
    return comment


async def delete_task_comment(comment_id: str, actor: dict) -> None:
    comment = await db.task_comments.find_one({"id": comment_id}, {"_id": 0})
    if not comment:
        raise NotFoundError(f"Comment {comment_id} not found")
    if not can_delete_task_comment(actor, comment):
        raise PermissionDeniedError("Only the author or an admin can delete this comment.")
    await db.task_comments.delete_one({"id": comment_id})
