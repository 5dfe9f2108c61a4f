"""Scheduled task system backed by the system crontab.

This package provides:
- Cron expression parsing, matching and next-run computation
- A JSON-file task repository
- Synchronization of enabled tasks into a managed crontab block
- Foreground execution of a task's command

Example:
    from xbot.scheduler import Scheduler, Task

    scheduler = Scheduler("/path/to/project", "/usr/local/bin/xbot")
    scheduler.add_task(Task(
        id="clear-cache",
        command="php artisan cache:clear",
        cron_expression="0 3 * * *",
        description="Nightly cache clear",
    ))
    scheduler.sync_to_system_crontab()
"""

from xbot.scheduler.crontab import SystemCrontab, render_managed_block, replace_managed_block
from xbot.scheduler.errors import (
    CorruptStore,
    CrontabUnavailable,
    DuplicateId,
    InvalidExpression,
    InvalidTaskId,
    NoMatchFound,
    NotFound,
    SchedulerError,
    TaskLaunchError,
)
from xbot.scheduler.expression import CronExpression, CronField
from xbot.scheduler.repository import TaskRepository
from xbot.scheduler.service import Scheduler
from xbot.scheduler.task import Task

__all__ = [
    # Service
    "Scheduler",
    # Types
    "Task",
    "CronExpression",
    "CronField",
    # Storage
    "TaskRepository",
    # Crontab
    "SystemCrontab",
    "render_managed_block",
    "replace_managed_block",
    # Errors
    "SchedulerError",
    "InvalidExpression",
    "InvalidTaskId",
    "DuplicateId",
    "NotFound",
    "CorruptStore",
    "CrontabUnavailable",
    "NoMatchFound",
    "TaskLaunchError",
]
