"""
Push notification intents for task events.

The core only emits intents; delivery and retry belong to the edge function
behind NOTIFY_FUNCTION_URL. Intent format:
    {
        "task_id": "...",
        "target_user_id": "...",
        "title": "New Task Assigned",
        "message": "New task assigned by Alice",
        "notification_type": "task_assigned" | "task_reminder",
        "metadata": {"assigned_by_name": "Alice"}
    }
"""

import httpx
import logging
from typing import Dict, Any

import config

logger = logging.getLogger("notification_dispatcher")

NOTIFICATION_TYPES = ["task_assigned", "task_reminder"]

DISPATCH_TIMEOUT = 15.0


def build_task_intent(
    task_id: str,
    user_id: str,
    assigned_by_name: str,
    notification_type: str = "task_assigned"
) -> Dict[str, Any]:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")

    if notification_type == "task_assigned":
        title = "New Task Assigned"
        message = f"New task assigned by {assigned_by_name}"
    else:
        title = "Task Reminder"
        message = "Reminder: Task still pending"

    return {
        "task_id": task_id,
        "target_user_id": user_id,
        "title": title,
        "message": message,
        "notification_type": notification_type,
        "metadata": {"assigned_by_name": assigned_by_name},
    }


async def dispatch(intent: Dict[str, Any]) -> Dict[str, Any]:
    """
    Hand an intent to the notification function.
    Never raises: a failed dispatch is logged and reported in the result.
    """
    url = config.NOTIFY_FUNCTION_URL
    if not url:
        logger.info(
            f"[NOTIFY] no function configured, intent dropped | "
            f"type={intent['notification_type']} task={intent['task_id']} user={intent['target_user_id']}"
        )
        return {"success": False, "error": "not_configured"}

    headers = {"Content-Type": "application/json"}
    if config.NOTIFY_FUNCTION_KEY:
        headers["Authorization"] = f"Bearer {config.NOTIFY_FUNCTION_KEY}"

    payload = {
        "task_id": intent["task_id"],
        "user_id": intent["target_user_id"],
        "title": intent["title"],
        "message": intent["message"],
        "notification_type": intent["notification_type"],
        "data": intent.get("metadata") or {},
    }

    try:
        async with httpx.AsyncClient(timeout=DISPATCH_TIMEOUT) as http_client:
            response = await http_client.post(url, json=payload, headers=headers)

        if response.status_code >= 400:
            logger.error(
                f"[NOTIFY] function rejected intent | status={response.status_code} "
                f"task={intent['task_id']} body={response.text[:200]}"
            )
            return {"success": False, "error": f"HTTP {response.status_code}"}

        logger.info(f"[NOTIFY] sent {intent['notification_type']} task={intent['task_id']}")
        return {"success": True}

    except httpx.TimeoutException:
        logger.error(f"[NOTIFY] timeout task={intent['task_id']}")
        return {"success": False, "error": "timeout"}
    except httpx.HTTPError as e:
        logger.error(f"[NOTIFY] error task={intent['task_id']}: {e}")
        return {"success": False, "error": str(e)}


async def notify_task(
    task_id: str,
    user_id: str,
    assigned_by_name: str,
    notification_type: str = "task_assigned"
) -> Dict[str, Any]:
    intent = build_task_intent(task_id, user_id, assigned_by_name, notification_type)
    return await dispatch(intent)
