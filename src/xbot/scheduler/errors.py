"""Exceptions raised by the scheduler subsystem.

All errors derive from :class:`SchedulerError` so the CLI can report them
uniformly. None of them subclass ``ValueError``: they are raised from inside
pydantic validators and must reach the caller unchanged rather than being
folded into a ``ValidationError``.
"""


class SchedulerError(Exception):
    """Base class for scheduler errors."""


class InvalidExpression(SchedulerError):
    """A cron expression has the wrong field count or an unparseable field."""


class InvalidTaskId(SchedulerError):
    """A task id contains characters other than ``a-z``, ``0-9`` and ``-``."""


class DuplicateId(SchedulerError):
    """A task with the same id is already stored."""


class NotFound(SchedulerError):
    """No task exists with the requested id."""


class CorruptStore(SchedulerError):
    """The task store file cannot be parsed."""


class CrontabUnavailable(SchedulerError):
    """The system crontab cannot be read or updated."""


class NoMatchFound(SchedulerError):
    """A next-run search exhausted its budget without a match."""


class TaskLaunchError(SchedulerError):
    """The task's command could not be started at all."""
