"""Scheduled task model.

A task pairs a shell command with a cron expression. Tasks are stored as
JSON records (see :mod:`xbot.scheduler.repository`) and rendered into the
user's crontab as calls back into ``xbot schedule run <id>``.
"""

import re
import shlex
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from xbot.scheduler.errors import InvalidTaskId
from xbot.scheduler.expression import CronExpression

TASK_ID_PATTERN = re.compile(r"^[a-z0-9-]+$")

# Timestamp layout of createdAt in the task store
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def is_valid_task_id(task_id: str) -> bool:
    """Check that an id only contains lowercase letters, digits and hyphens."""
    return TASK_ID_PATTERN.fullmatch(task_id) is not None


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _crontab_escape(text: str) -> str:
    # cron turns an unescaped % into a newline
    return text.replace("%", r"\%")


class Task(BaseModel):
    """A scheduled job.

    Attributes:
        id: Unique identifier, ``[a-z0-9-]+``. Cannot be changed.
        command: Shell command run by the task.
        cron_expression: When the task runs.
        description: Free text shown in listings and the crontab comment.
        enabled: Whether the task is written to the crontab.
        working_directory: Directory the command runs in.
        output_file: Where cron sends stdout (``/dev/null`` if unset).
        error_file: Where cron sends stderr.
        created_at: Creation time, second resolution. Cannot be changed.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )

    id: str = Field(..., frozen=True, description="Unique task identifier")
    command: str = Field(..., description="Shell command to execute")
    cron_expression: CronExpression = Field(..., description="Cron schedule")
    description: str = Field(default="", description="Task description")
    enabled: bool = Field(default=True, description="Whether the task is active")
    working_directory: str | None = Field(default=None, description="Working directory")
    output_file: str | None = Field(default=None, description="stdout redirection target")
    error_file: str | None = Field(default=None, description="stderr redirection target")
    created_at: datetime = Field(
        default_factory=_now,
        frozen=True,
        description="Task creation timestamp",
    )

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not is_valid_task_id(value):
            raise InvalidTaskId(
                f"Invalid task ID: {value!r} "
                "(use only lowercase letters, numbers, and hyphens)"
            )
        return value

    @field_validator("cron_expression", mode="before")
    @classmethod
    def _parse_cron_expression(cls, value: Any) -> Any:
        # A failed parse raises before assignment, so the old value stays
        if isinstance(value, str):
            return CronExpression(value)
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return datetime.strptime(value, TIMESTAMP_FORMAT)
            except ValueError:
                value = datetime.fromisoformat(value)
        if isinstance(value, datetime):
            # Stored with second resolution
            return value.replace(microsecond=0)
        return value

    @field_validator("working_directory", "output_file", "error_file")
    @classmethod
    def _empty_path_is_none(cls, value: str | None) -> str | None:
        return value or None

    @field_serializer("cron_expression")
    def _serialize_cron_expression(self, value: CronExpression) -> str:
        return str(value)

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return value.strftime(TIMESTAMP_FORMAT)

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def to_record(self) -> dict[str, Any]:
        """Serialize to the JSON record stored on disk."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "Task":
        """Restore a task from a stored JSON record."""
        return cls.model_validate(data)

    def to_crontab_entry(self, executable_path: str) -> str:
        """Render the crontab line that runs this task.

        The line calls ``<executable_path> schedule run <id>`` rather than the
        command itself, so the command never has to survive crontab quoting.

        Redirection: stdout goes to ``output_file`` or ``/dev/null``. stderr
        goes to ``error_file`` if set; otherwise it is merged into stdout only
        when ``output_file`` is unset.

        Args:
            executable_path: Absolute path of the ``xbot`` executable.

        Returns:
            A single crontab line.
        """
        command = f"{shlex.quote(executable_path)} schedule run {self.id}"

        if self.working_directory:
            command = f"cd {shlex.quote(self.working_directory)} && {command}"

        if self.output_file:
            command += f" > {shlex.quote(self.output_file)}"
        else:
            command += " > /dev/null"

        if self.error_file:
            command += f" 2> {shlex.quote(self.error_file)}"
        elif not self.output_file:
            command += " 2>&1"

        parts = [str(self.cron_expression), command]

        if self.description:
            # Keep the comment on one line
            description = " ".join(self.description.split())
            parts.append(f"# {self.id}: {description}")

        return _crontab_escape(" ".join(parts))
