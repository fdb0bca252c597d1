"""
Scheduler for the CRM background jobs
- Task acceptance reminders every 15 minutes
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

import config

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Scheduled jobs manager"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=config.REPORTING_TIMEZONE)

    def start(self):
        """Start the scheduler with every job"""
        self.scheduler.add_job(
            self.send_task_reminders,
            CronTrigger(minute="*/15"),
            id="task_reminders",
            name="Task acceptance reminders",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    # ==================== JOBS ====================

    async def send_task_reminders(self):
        """Remind assignees of tasks still awaiting acceptance"""
        from services.task_reminders import run_reminder_sweep

        try:
            result = await run_reminder_sweep()
            if result["reminded"]:
                logger.info(f"Reminders sent: {result['reminded']} ({result['dispatch_failed']} dispatch failures)")
        except Exception as e:
            # next run retries
            logger.error(f"Reminder sweep error: {str(e)}")


# Global instance
task_scheduler = TaskScheduler()
