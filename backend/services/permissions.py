"""
CRM - Authorization policy
Single source of truth for who may mutate tasks and task comments.
Routes and services call these helpers; nothing else re-implements them.
"""

import logging
from typing import Optional

from services.errors import InvalidInputError, PermissionDeniedError

logger = logging.getLogger("permissions")

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
VALID_ROLES = [ROLE_MEMBER, ROLE_ADMIN]

DELETE_CONFIRMATION = "CONFIRM"


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def is_admin(actor: Optional[dict]) -> bool:
    return bool(actor) and actor.get("role") == ROLE_ADMIN


def can_modify_task(actor: Optional[dict], task: dict) -> bool:
    """Admin, or the task's assignee. Nobody else touches status fields."""
    if not actor:
        return False
    if is_admin(actor):
        return True
    return bool(task.get("assigned_to")) and task.get("assigned_to") == actor.get("id")


def can_view_task(actor: Optional[dict], task: dict) -> bool:
    """Admins see every task, members only the ones assigned to them"""
    if not actor:
        return False
    return is_admin(actor) or task.get("assigned_to") == actor.get("id")


def can_view_task_comments(actor: Optional[dict], task: dict) -> bool:
    return can_view_task(actor, task)


def can_add_task_comment(actor: Optional[dict], task: dict) -> bool:
    """Only the assignee, and only once the task is completed."""
    if not actor:
        return False
    return task.get("assigned_to") == actor.get("id") and task.get("status") == "completed"


def can_delete_task_comment(actor: Optional[dict], comment: dict) -> bool:
    if not actor:
        return False
    return is_admin(actor) or comment.get("user_id") == actor.get("id")


def ensure_can_modify_task(actor: Optional[dict], task: dict, action: str) -> None:
    if not can_modify_task(actor, task):
        logger.warning(
            f"[PERMISSION_DENIED] user={(actor or {}).get('id')} "
            f"action={action} task={task.get('id')}"
        )
        raise PermissionDeniedError(f"Only the assigned person can {action} this task.")


def ensure_admin(actor: Optional[dict], action: str) -> None:
    if not is_admin(actor):
        logger.warning(f"[PERMISSION_DENIED] user={(actor or {}).get('id')} action={action}")
        raise PermissionDeniedError(f"Admin access required to {action}.")



def ensure_delete_confirmed(confirm_text: Optional[str]) -> None:
    """Destructive deletes need the confirmation word typed exactly"""
    if confirm_text != DELETE_CONFIRMATION:
        raise InvalidInputError(f"Confirmation required: please type {DELETE_CONFIRMATION} to delete.")
