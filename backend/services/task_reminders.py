"""
CRM - Task reminder sweep

Tasks still awaiting acceptance get a "task_reminder" intent every
reminder_interval_hours, at most max_reminders times.
Run by the scheduler; safe to run concurrently (each reminder is claimed
with a conditional update before it is sent).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

import config
from config import db, to_iso, utc_now
from services.notification_dispatcher import notify_task

logger = logging.getLogger("task_reminders")


def reminder_limit(task: dict) -> int:
    limit = task.get("max_reminders")
    return config.TASK_MAX_REMINDERS if limit is None else limit


def reminder_due(task: dict, now_str: str) -> bool:
    sent = task.get("reminders_sent") or 0
    limit = reminder_limit(task)
    return task.get("acceptance_status") == "pending" \
        and bool(task.get("next_reminder_at")) \
        and task["next_reminder_at"] <= now_str \
        and sent < limit


async def run_reminder_sweep(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    now_str = to_iso(now)

    candidates = await db.tasks.find(
        {"acceptance_status": "pending", "next_reminder_at": {"$lte": now_str}},
        {"_id": 0}
    ).sort("next_reminder_at", 1).to_list(1000)

    reminded, skipped, failed = 0, 0, 0
    for task in candidates:
        if not reminder_due(task, now_str):
            skipped += 1
            continue

        interval = task.get("reminder_interval_hours") or config.TASK_REMINDER_INTERVAL_HOURS
        reminders_sent = task.get("reminders_sent") or 0
        limit = reminder_limit(task)
        update = {"$set": {"reminders_sent": reminders_sent + 1}}
        if reminders_sent + 1 < limit:
            update["$set"]["next_reminder_at"] = to_iso(now + timedelta(hours=interval))
        else:
            # last reminder: drop out of the sweep for good
            update["$unset"] = {"next_reminder_at": ""}

        claimed = await db.tasks.update_one(
            {"id": task["id"], "acceptance_status": "pending", "reminders_sent": task.get("reminders_sent")},
            update
        )
        if claimed.modified_count == 0:
            skipped += 1
            continue

        assigner = await db.profiles.find_one({"id": task.get("assigned_by")}, {"_id": 0, "full_name": 1})
        assigner_name = (assigner or {}).get("full_name") or "Someone"

        reminded += 1
        result = await notify_task(task["id"], task["assigned_to"], assigner_name, "task_reminder")
        if not result.get("success"):
            failed += 1

    logger.info(f"[REMINDERS] sweep done | candidates={len(candidates)} reminded={reminded} dispatch_failed={failed} skipped={skipped}")
    return {"candidates": len(candidates), "reminded": reminded, "dispatch_failed": failed, "skipped": skipped}
