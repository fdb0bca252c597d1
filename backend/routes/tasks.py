"""
CRM - Routes Tasks
Assignment, acceptance workflow, board view and completion comments.
All transition rules live in services/task_lifecycle.py.
"""

from fastapi import APIRouter, Depends
from typing import Optional

from models.task import TaskCreate, TaskDecline, TaskComplete, TaskCommentCreate, TaskDocument
from routes.auth import get_current_user
from services import task_lifecycle
from services.permissions import is_admin

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("")
async def list_tasks(
    assigned_to: Optional[str] = None,
    related_client_id: Optional[str] = None,
    related_lead_id: Optional[str] = None,
    status: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    """Admins see every task, members only their own"""
    if not is_admin(user):
        assigned_to = user["id"]
    tasks = await task_lifecycle.list_tasks(assigned_to, related_client_id, related_lead_id, status)
    return {"tasks": tasks, "count": len(tasks)}


@router.get("/pending-acceptance")
async def my_pending_acceptance(user: dict = Depends(get_current_user)):
    tasks = await task_lifecycle.list_pending_acceptance(user["id"])
    return {"tasks": tasks, "count": len(tasks)}


@router.get("/board")
async def board_counts(user: dict = Depends(get_current_user)):
    assigned_to = None if is_admin(user) else user["id"]
    tasks = await task_lifecycle.list_tasks(assigned_to=assigned_to)
    return task_lifecycle.compute_board_counts(tasks)


@router.get("/{task_id}", response_model=TaskDocument)
async def get_task(task_id: str, user: dict = Depends(get_current_user)):
    """Admins, or the assignee"""
    return await task_lifecycle.view_task(task_id, user)


@router.post("")
async def create_task(data: TaskCreate, user: dict = Depends(get_current_user)):
    return await task_lifecycle.create_task(data.model_dump(mode="json"), user)


@router.post("/{task_id}/accept")
async def accept_task(task_id: str, user: dict = Depends(get_current_user)):
    return await task_lifecycle.accept_task(task_id, user)


@router.post("/{task_id}/decline")
async def decline_task(task_id: str, data: TaskDecline, user: dict = Depends(get_current_user)):
    return await task_lifecycle.decline_task(task_id, user, data.reason)


@router.post("/{task_id}/start")
async def start_task(task_id: str, user: dict = Depends(get_current_user)):
    return await task_lifecycle.start_task(task_id, user)


@router.post("/{task_id}/complete")
async def complete_task(task_id: str, data: TaskComplete, user: dict = Depends(get_current_user)):
    return await task_lifecycle.complete_task(task_id, user, data.note)


@router.post("/{task_id}/revision")
async def request_revision(task_id: str, user: dict = Depends(get_current_user)):
    return await task_lifecycle.request_revision(task_id, user)


@router.delete("/{task_id}")
async def delete_task(task_id: str, user: dict = Depends(get_current_user)):
    await task_lifecycle.delete_task(task_id, user)
    return {"success": True}


# ==================== COMMENTS ====================

@router.get("/{task_id}/comments")
async def list_comments(task_id: str, user: dict = Depends(get_current_user)):
    comments = await task_lifecycle.list_task_comments(task_id, user)
    return {"comments": comments}


@router.post("/{task_id}/comments")
async def add_comment(task_id: str, data: TaskCommentCreate, user: dict = Depends(get_current_user)):
    return await task_lifecycle.add_task_comment(task_id, user, data.comment)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, user: dict = Depends(get_current_user)):
    await task_lifecycle.delete_task_comment(comment_id, user)
    return {"success": True}
