"""Scheduler for managing tasks and syncing them into the system crontab.

xbot does not run a scheduling loop of its own. Periodic execution is left
to the cron daemon: :meth:`Scheduler.sync_to_system_crontab` writes one line
per enabled task, and each line calls back into ``xbot schedule run <id>``.
"""

import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any

from xbot.config import Settings
from xbot.scheduler.crontab import SystemCrontab, replace_managed_block
from xbot.scheduler.errors import DuplicateId, NoMatchFound, NotFound, TaskLaunchError
from xbot.scheduler.expression import CronExpression
from xbot.scheduler.repository import TaskRepository
from xbot.scheduler.task import Task

logger = logging.getLogger(__name__)


class Scheduler:
    """Orchestrates the task repository, cron evaluation and the crontab.

    The Scheduler holds no task state of its own; the repository is the
    source of truth.

    Example:
        scheduler = Scheduler("/path/to/project", "/usr/local/bin/xbot")
        scheduler.add_task(Task(id="backup", command="./backup.sh", cron_expression="0 3 * * *"))
        scheduler.sync_to_system_crontab()
    """

    def __init__(
        self,
        project_root: str | Path,
        executable_path: str | Path,
        repository: TaskRepository | None = None,
        crontab: SystemCrontab | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            project_root: Project the tasks belong to.
            executable_path: Absolute path of the xbot executable, written
                into crontab entries.
            repository: Task store (defaults to the project's store).
            crontab: Crontab accessor (defaults to the system ``crontab``).
        """
        self._project_root = Path(project_root)
        self._executable_path = str(executable_path)
        self._repository = repository or TaskRepository(self._project_root)
        self._crontab = crontab or SystemCrontab()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Scheduler":
        """Build a scheduler from application settings."""
        return cls(
            project_root=settings.project_root,
            executable_path=settings.get_executable_path(),
            repository=TaskRepository(settings.project_root, settings.get_tasks_file()),
            crontab=SystemCrontab(settings.crontab_command, settings.crontab_timeout),
        )

    @property
    def project_root(self) -> Path:
        return self._project_root

    @property
    def executable_path(self) -> str:
        return self._executable_path

    @property
    def repository(self) -> TaskRepository:
        return self._repository

    def list_tasks(self) -> list[Task]:
        return self._repository.all()

    def get_task(self, task_id: str) -> Task:
        """Get a task by id.

        Raises:
            NotFound: If no task has this id.
        """
        task = self._repository.find(task_id)
        if task is None:
            raise NotFound(f"Task not found: {task_id}")
        return task

    def validate_task(self, task: Task) -> bool:
        """Check that a task looks runnable.

        A missing working directory is only reported; it may be created
        before the task first runs.
        """
        if not CronExpression.is_valid(str(task.cron_expression)):
            return False

        if task.working_directory and not Path(task.working_directory).is_dir():
            logger.warning(
                f"Working directory for task '{task.id}' does not exist: {task.working_directory}"
            )

        return True

    def add_task(self, task: Task) -> None:
        """Store a new task.

        Raises:
            DuplicateId: If a task with the same id already exists.
        """
        if self._repository.exists(task.id):
            raise DuplicateId(f"Task already exists: {task.id}")

        self._repository.save(task)
        logger.info(f"Added scheduled task: {task.id} ({task.cron_expression})")

    def remove_task(self, task_id: str) -> None:
        """Delete a task.

        Raises:
            NotFound: If no task has this id.
        """
        self._repository.delete(task_id)

    def enable_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        task.enable()
        self._repository.save(task)
        return task

    def disable_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        task.disable()
        self._repository.save(task)
        return task

    def update_task(self, task_id: str, **changes: Any) -> Task:
        """Change fields of an existing task.

        Every change is validated before anything is stored; an invalid cron
        expression leaves the task untouched.

        Args:
            task_id: Task to change.
            **changes: Field names and new values, e.g.
                ``cron_expression="*/5 * * * *"``.

        Raises:
            NotFound: If no task has this id.
            InvalidExpression: If a new cron expression is invalid.
            ValueError: If a change names an unknown or read-only field.
        """
        if "id" in changes or "created_at" in changes:
            raise ValueError("Task id and creation time cannot be changed")

        unknown = sorted(set(changes) - set(Task.model_fields))
        if unknown:
            raise ValueError(f"Unknown task field(s): {', '.join(unknown)}")

        task = self.get_task(task_id)
        updated = Task.model_validate({**task.model_dump(), **changes})
        self._repository.save(updated)
        logger.info(f"Updated scheduled task: {task_id}")
        return updated

    def get_next_run_time(self, task_id: str, now: datetime | None = None) -> datetime | None:
        """Compute when a task runs next.

        The search can take a while for sparse schedules.

        Args:
            task_id: Task to look up.
            now: Reference time (defaults to now).

        Returns:
            The next run time, or None if the schedule never matches.

        Raises:
            NotFound: If no task has this id.
        """
        task = self.get_task(task_id)
        try:
            return task.cron_expression.next_run_date(now)
        except NoMatchFound:
            logger.warning(f"Task '{task_id}' has a schedule that never matches: {task.cron_expression}")
            return None

    def run_task(self, task_id: str) -> int:
        """Run a task's command now, in the foreground.

        Output goes to the caller's terminal; the task's output and error
        files only apply to runs started by cron.

        Returns:
            The command's exit code.

        Raises:
            NotFound: If no task has this id.
            TaskLaunchError: If the command could not be started.
        """
        task = self.get_task(task_id)
        logger.info(f"Running task {task.id}: {task.command}")

        try:
            result = subprocess.run(task.command, shell=True, cwd=task.working_directory)
        except OSError as e:
            raise TaskLaunchError(f"Failed to start task '{task.id}': {e}") from e

        if result.returncode == 0:
            logger.info(f"Task {task.id} completed")
        else:
            logger.warning(f"Task {task.id} exited with code {result.returncode}")

        return result.returncode

    def render_crontab_entries(self) -> list[str]:
        """Render one crontab line per enabled task, ordered by id."""
        tasks = sorted(self._repository.enabled_tasks(), key=lambda task: task.id)
        return [task.to_crontab_entry(self._executable_path) for task in tasks]

    def sync_to_system_crontab(self) -> list[str]:
        """Write all enabled tasks into the managed crontab block.

        Returns:
            The crontab lines that were installed.

        Raises:
            CrontabUnavailable: If the crontab cannot be read or installed.
        """
        entries = self.render_crontab_entries()
        current = self._crontab.read()
        self._crontab.install(replace_managed_block(current, entries))
        logger.info(f"Synchronized {len(entries)} scheduled tasks to crontab")
        return entries
