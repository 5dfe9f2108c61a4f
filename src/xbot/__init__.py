"""xbot - project maintenance utilities with a crontab-backed task scheduler."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("xbot-utils")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from xbot.scheduler import CronExpression, Scheduler, Task, TaskRepository

__all__ = ["CronExpression", "Scheduler", "Task", "TaskRepository"]
