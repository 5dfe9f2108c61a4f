"""Tests for the Scheduler service."""

from datetime import datetime
from pathlib import Path

import pytest

from xbot.config import Settings
from xbot.scheduler.crontab import BLOCK_BEGIN, BLOCK_END, SystemCrontab
from xbot.scheduler.errors import (
    CrontabUnavailable,
    DuplicateId,
    InvalidExpression,
    NotFound,
    TaskLaunchError,
)
from xbot.scheduler.repository import TaskRepository
from xbot.scheduler.service import Scheduler
from xbot.scheduler.task import Task

XBOT = "/usr/local/bin/xbot"


class FakeCrontab:
    """In-memory crontab."""

    def __init__(self, content: str = "") -> None:
        self.content = content
        self.installs = 0

    def read(self) -> str:
        return self.content

    def install(self, content: str) -> None:
        self.content = content
        self.installs += 1


def make_task(task_id: str = "backup", **overrides) -> Task:
    data = {
        "id": task_id,
        "command": "php artisan backup:run",
        "cron_expression": "0 0 * * *",
    }
    data.update(overrides)
    return Task(**data)


@pytest.fixture
def crontab():
    return FakeCrontab("MAILTO=dev@example.com\n")


@pytest.fixture
def scheduler(tmp_path, crontab):
    return Scheduler(tmp_path, XBOT, crontab=crontab)


def managed_lines(content: str) -> list[str]:
    lines = content.splitlines()
    return lines[lines.index(BLOCK_BEGIN) + 1:lines.index(BLOCK_END)]


class TestTaskManagement:
    """Tests for add, remove, enable and disable."""

    def test_add_task(self, scheduler, tmp_path) -> None:
        """Added tasks are persisted."""
        scheduler.add_task(make_task())

        assert TaskRepository(tmp_path).exists("backup")
        assert [task.id for task in scheduler.list_tasks()] == ["backup"]

    def test_add_duplicate(self, scheduler, tmp_path) -> None:
        """A second task with the same id is refused and the first kept."""
        scheduler.add_task(make_task(command="original"))

        with pytest.raises(DuplicateId):
            scheduler.add_task(make_task(command="replacement"))

        assert scheduler.get_task("backup").command == "original"
        assert TaskRepository(tmp_path).find("backup").command == "original"

    def test_remove_task(self, scheduler, tmp_path) -> None:
        """Removed tasks are gone from the store."""
        scheduler.add_task(make_task())
        scheduler.remove_task("backup")

        assert not TaskRepository(tmp_path).exists("backup")

    def test_remove_missing(self, scheduler) -> None:
        with pytest.raises(NotFound):
            scheduler.remove_task("nope")

    def test_enable_disable(self, scheduler, tmp_path) -> None:
        """The enabled flag is flipped and persisted."""
        scheduler.add_task(make_task())

        scheduler.disable_task("backup")
        assert TaskRepository(tmp_path).find("backup").enabled is False

        scheduler.enable_task("backup")
        assert TaskRepository(tmp_path).find("backup").enabled is True

    @pytest.mark.parametrize("method", ["enable_task", "disable_task", "get_task", "run_task"])
    def test_unknown_id(self, scheduler, method: str) -> None:
        """Operations on unknown ids raise NotFound."""
        with pytest.raises(NotFound, match="nope"):
            getattr(scheduler, method)("nope")

    def test_update_task(self, scheduler, tmp_path) -> None:
        """Fields can be changed in place."""
        scheduler.add_task(make_task())

        updated = scheduler.update_task(
            "backup", cron_expression="*/10 * * * *", description="Every ten minutes"
        )

        stored = TaskRepository(tmp_path).find("backup")
        assert str(stored.cron_expression) == "*/10 * * * *"
        assert stored.description == "Every ten minutes"
        assert stored.created_at == updated.created_at

    def test_update_with_invalid_cron_keeps_task(self, scheduler, tmp_path) -> None:
        """An invalid schedule leaves the stored task unchanged."""
        scheduler.add_task(make_task())

        with pytest.raises(InvalidExpression):
            scheduler.update_task("backup", cron_expression="0 0 31 2 * *")

        assert str(TaskRepository(tmp_path).find("backup").cron_expression) == "0 0 * * *"

    def test_update_id_refused(self, scheduler) -> None:
        scheduler.add_task(make_task())

        with pytest.raises(ValueError):
            scheduler.update_task("backup", id="other")

    def test_update_unknown_field_refused(self, scheduler, tmp_path) -> None:
        """A misspelt field name is an error, not a silent no-op."""
        scheduler.add_task(make_task())

        with pytest.raises(ValueError, match="cron"):
            scheduler.update_task("backup", cron="*/5 * * * *")

        assert str(TaskRepository(tmp_path).find("backup").cron_expression) == "0 0 * * *"


class TestValidation:
    """Tests for validate_task."""

    def test_valid_task(self, scheduler, tmp_path) -> None:
        assert scheduler.validate_task(make_task(working_directory=str(tmp_path)))

    def test_missing_working_directory_is_only_a_warning(self, scheduler, tmp_path, caplog) -> None:
        """A working directory that does not exist yet does not fail validation."""
        task = make_task(working_directory=str(tmp_path / "later"))

        assert scheduler.validate_task(task)
        assert "does not exist" in caplog.text


class TestNextRunTime:
    """Tests for get_next_run_time."""

    def test_next_run(self, scheduler) -> None:
        scheduler.add_task(make_task(cron_expression="30 2 * * *"))

        result = scheduler.get_next_run_time("backup", now=datetime(2024, 1, 1))
        assert result == datetime(2024, 1, 1, 2, 30)

    def test_never_matching_schedule(self, scheduler) -> None:
        """A schedule that never fires has no next run."""
        scheduler.add_task(make_task(cron_expression="0 0 31 2 *"))

        assert scheduler.get_next_run_time("backup", now=datetime(2024, 1, 1)) is None

    def test_unknown_task(self, scheduler) -> None:
        with pytest.raises(NotFound):
            scheduler.get_next_run_time("nope")


class TestRunTask:
    """Tests for running a task's command."""

    def test_success(self, scheduler) -> None:
        scheduler.add_task(make_task(command="true"))
        assert scheduler.run_task("backup") == 0

    def test_exit_code_is_passed_through(self, scheduler) -> None:
        """The command's own failure is returned, not raised."""
        scheduler.add_task(make_task(command="exit 3"))
        assert scheduler.run_task("backup") == 3

    def test_runs_in_working_directory(self, scheduler, tmp_path) -> None:
        """The command runs inside the task's working directory."""
        workdir = tmp_path / "app"
        workdir.mkdir()
        scheduler.add_task(make_task(command="pwd > where.txt", working_directory=str(workdir)))

        assert scheduler.run_task("backup") == 0
        where = Path((workdir / "where.txt").read_text().strip())
        assert where.resolve() == workdir.resolve()

    def test_output_file_not_applied(self, scheduler, tmp_path) -> None:
        """Manual runs ignore the cron redirection files."""
        output = tmp_path / "out.log"
        scheduler.add_task(make_task(command="true", output_file=str(output)))

        scheduler.run_task("backup")
        assert not output.exists()

    def test_missing_working_directory(self, scheduler, tmp_path) -> None:
        """A command that cannot start raises TaskLaunchError."""
        scheduler.add_task(make_task(command="true", working_directory=str(tmp_path / "gone")))

        with pytest.raises(TaskLaunchError):
            scheduler.run_task("backup")


class TestCrontabSync:
    """Tests for syncing enabled tasks into the crontab."""

    def test_enabled_task_is_synced(self, scheduler, crontab) -> None:
        """An enabled task appears as exactly one managed line."""
        task = make_task()
        scheduler.add_task(task)
        scheduler.enable_task("backup")

        entries = scheduler.sync_to_system_crontab()

        assert entries == [task.to_crontab_entry(XBOT)]
        assert managed_lines(crontab.content)[1:] == entries
        assert crontab.content.startswith("MAILTO=dev@example.com\n")

    def test_disabled_task_is_excluded(self, scheduler, crontab) -> None:
        """Disabling a task and syncing removes its line."""
        scheduler.add_task(make_task("keep"))
        scheduler.add_task(make_task("drop"))
        scheduler.sync_to_system_crontab()

        scheduler.disable_task("drop")
        scheduler.sync_to_system_crontab()

        assert "schedule run keep" in crontab.content
        assert "schedule run drop" not in crontab.content
        assert crontab.installs == 2

    def test_entries_sorted_by_id(self, scheduler) -> None:
        for task_id in ("charlie", "alpha", "bravo"):
            scheduler.add_task(make_task(task_id))

        entries = scheduler.render_crontab_entries()
        assert [entry.split(" schedule run ")[1].split()[0] for entry in entries] == [
            "alpha", "bravo", "charlie"
        ]

    def test_nothing_enabled_removes_block(self, scheduler, crontab) -> None:
        scheduler.add_task(make_task())
        scheduler.sync_to_system_crontab()
        scheduler.disable_task("backup")

        assert scheduler.sync_to_system_crontab() == []
        assert crontab.content == "MAILTO=dev@example.com\n"

    def test_sync_with_system_crontab(self, tmp_path, fake_crontab) -> None:
        """End to end through a crontab executable."""
        command, store = fake_crontab
        scheduler = Scheduler(tmp_path, XBOT, crontab=SystemCrontab(command))
        scheduler.add_task(make_task())

        scheduler.sync_to_system_crontab()

        assert f"{XBOT} schedule run backup > /dev/null 2>&1" in store.read_text()

    def test_sync_install_rejected(self, tmp_path, readonly_crontab) -> None:
        command, _ = readonly_crontab
        scheduler = Scheduler(tmp_path, XBOT, crontab=SystemCrontab(command))
        scheduler.add_task(make_task())

        with pytest.raises(CrontabUnavailable):
            scheduler.sync_to_system_crontab()


class TestFromSettings:
    """Tests for building a scheduler from settings."""

    def test_uses_settings(self, tmp_path) -> None:
        settings = Settings(
            project_root=tmp_path,
            tasks_file="state/tasks.json",
            executable_path="/opt/xbot/bin/xbot",
        )

        scheduler = Scheduler.from_settings(settings)

        assert scheduler.project_root == tmp_path
        assert scheduler.repository.tasks_file == tmp_path / "state" / "tasks.json"
        assert scheduler.executable_path.endswith("xbot")
