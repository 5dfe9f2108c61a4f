"""Configuration management for xbot."""

import os
import shutil
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Built once by the CLI and passed to the components that need it.
    """

    model_config = SettingsConfigDict(
        env_prefix="XBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Project the scheduled tasks belong to",
    )
    tasks_file: Path = Field(
        default=Path(".xbot") / "scheduled_tasks.json",
        description="Task store location, relative to the project root",
    )
    executable_path: Path | None = Field(
        default=None,
        description="xbot executable written into crontab entries (default: the running one)",
    )

    # Crontab settings
    crontab_command: str = Field(
        default="crontab",
        description="crontab executable used to read and install entries",
    )
    crontab_timeout: float = Field(
        default=30,
        description="Seconds to wait for the crontab command",
    )

    # Output settings
    color: Literal["auto", "always", "never"] = Field(
        default="auto",
        description="Colored output: auto, always, or never",
    )

    def get_tasks_file(self) -> Path:
        """Get the absolute task store path."""
        if self.tasks_file.is_absolute():
            return self.tasks_file
        return self.project_root / self.tasks_file

    def get_executable_path(self) -> Path:
        """Get the absolute path of the xbot executable.

        Falls back to the script the current process was started from,
        looked up on ``PATH`` when it was invoked by bare name.
        """
        if self.executable_path:
            return self.executable_path.expanduser().resolve()

        argv0 = sys.argv[0] if sys.argv and sys.argv[0] else "xbot"
        if os.sep not in argv0:
            found = shutil.which(argv0)
            if found:
                return Path(found).resolve()
        return Path(argv0).resolve()
