"""JSON file persistence for scheduled tasks.

Tasks live in ``<project_root>/.xbot/scheduled_tasks.json`` as a JSON array
of task records. The whole file is loaded on construction and rewritten on
every change. Reads and writes hold a file lock so no reader ever sees a
half-written file; concurrent invocations are otherwise last-writer-wins.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from filelock import FileLock
from pydantic import ValidationError

from xbot.scheduler.errors import CorruptStore, NotFound, SchedulerError
from xbot.scheduler.task import Task, is_valid_task_id

logger = logging.getLogger(__name__)

DEFAULT_TASKS_FILE = Path(".xbot") / "scheduled_tasks.json"


class TaskRepository:
    """Store of tasks keyed by id.

    Example:
        repository = TaskRepository("/path/to/project")
        repository.save(Task(id="backup", command="./backup.sh", cron_expression="0 3 * * *"))
        repository.find("backup")
    """

    def __init__(
        self,
        project_root: str | Path,
        tasks_file: str | Path | None = None,
    ) -> None:
        """Load the task store.

        Args:
            project_root: Project directory the store belongs to.
            tasks_file: Store location; relative paths resolve against
                ``project_root``.

        Raises:
            CorruptStore: If the file exists but cannot be parsed.
        """
        self._project_root = Path(project_root)
        self._path = self._project_root / Path(tasks_file or DEFAULT_TASKS_FILE)
        self._lock = FileLock(str(self._path.with_suffix(".lock")))
        self._tasks: dict[str, Task] = {}

        self._load()

    @property
    def tasks_file(self) -> Path:
        """Get the storage file path."""
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            self._tasks = {}
            return

        with self._lock:
            try:
                content = self._path.read_text(encoding="utf-8")
            except OSError as e:
                raise CorruptStore(f"Failed to read tasks file: {self._path}: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise CorruptStore(f"Invalid JSON in tasks file: {self._path}: {e}") from e

        # Older versions wrote an object keyed by task id
        if isinstance(data, dict):
            data = list(data.values())

        if not isinstance(data, list):
            raise CorruptStore(f"Tasks file must contain a JSON array: {self._path}")

        tasks: dict[str, Task] = {}
        for record in data:
            task = self._parse_record(record)
            tasks[task.id] = task

        self._tasks = tasks
        logger.debug(f"Loaded {len(tasks)} scheduled tasks from {self._path}")

    def _parse_record(self, record: Any) -> Task:
        if not isinstance(record, dict):
            raise CorruptStore(f"Invalid task record in {self._path}: {record!r}")
        try:
            return Task.from_record(record)
        except (ValidationError, SchedulerError) as e:
            task_id = record.get("id", "?")
            raise CorruptStore(f"Invalid task record '{task_id}' in {self._path}: {e}") from e

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        records = [task.to_record() for task in self._tasks.values()]
        content = json.dumps(records, indent=2, ensure_ascii=False) + "\n"

        with self._lock:
            self._path.write_text(content, encoding="utf-8")

        logger.debug(f"Saved {len(records)} scheduled tasks to {self._path}")

    def all(self) -> list[Task]:
        return list(self._tasks.values())

    def enabled_tasks(self) -> list[Task]:
        return [task for task in self._tasks.values() if task.enabled]

    def find(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def exists(self, task_id: str) -> bool:
        return task_id in self._tasks

    def count(self) -> int:
        return len(self._tasks)

    def save(self, task: Task) -> None:
        """Insert or replace a task and rewrite the store."""
        self._tasks[task.id] = task
        self._persist()
        logger.info(f"Saved scheduled task: {task.id}")

    def delete(self, task_id: str) -> None:
        """Remove a task and rewrite the store.

        Raises:
            NotFound: If no task has this id.
        """
        if task_id not in self._tasks:
            raise NotFound(f"Task not found: {task_id}")

        del self._tasks[task_id]
        self._persist()
        logger.info(f"Removed scheduled task: {task_id}")

    def clear(self) -> int:
        """Remove every task.

        Returns:
            Number of tasks removed.
        """
        count = len(self._tasks)
        self._tasks = {}
        self._persist()
        logger.info(f"Cleared {count} scheduled tasks")
        return count

    @staticmethod
    def is_valid_task_id(task_id: str) -> bool:
        return is_valid_task_id(task_id)

    @staticmethod
    def generate_task_id(name: str, now: float | None = None) -> str:
        """Derive a task id from a human-readable name.

        ``"Nightly Backup!"`` becomes ``"nightly-backup-1718000000"``. A name with
        no letters or digits leaves only the timestamp, as ``"-1718000000"``.

        Args:
            name: Free-form task name.
            now: Unix time to append (defaults to the current time).
        """
        task_id = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
        timestamp = int(time.time() if now is None else now)
        return f"{task_id}-{timestamp}"
