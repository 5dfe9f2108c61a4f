"""Command-line interface for xbot.

Only the ``schedule`` command group lives here: it manages tasks stored in
``.xbot/scheduled_tasks.json`` and mirrors the enabled ones into the user's
crontab.

CONCEPTS:
---------
- TASK:  A shell command paired with a cron expression, identified by a
         lowercase id such as ``clear-cache``.

- SYNC:  Writing every enabled task into a marked block of the crontab.
         Each crontab line calls ``xbot schedule run <id>``.

- RUN:   Executing a task's command in the foreground, as cron would.
"""

import argparse
import json
import logging
import sys
from typing import NoReturn

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from xbot import __version__
from xbot.config import Settings
from xbot.scheduler import (
    CrontabUnavailable,
    NoMatchFound,
    Scheduler,
    SchedulerError,
    Task,
    TaskRepository,
)

console = Console()

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=verbose)],
        force=True,
    )


def _make_console(color: str) -> Console:
    if color == "always":
        return Console(force_terminal=True)
    if color == "never":
        return Console(no_color=True)
    return Console()


def _create_scheduler(args: argparse.Namespace) -> Scheduler:
    return Scheduler.from_settings(args.settings)


def _sync_hint() -> None:
    console.print("[dim]Run 'xbot schedule sync' to update the system crontab.[/dim]")


def cmd_schedule_list(args: argparse.Namespace) -> None:
    """List all scheduled tasks."""
    scheduler = _create_scheduler(args)
    tasks = sorted(scheduler.list_tasks(), key=lambda task: task.id)

    if args.json:
        print(json.dumps([task.to_record() for task in tasks], indent=2, ensure_ascii=False))
        return

    if not tasks:
        console.print("[yellow]No scheduled tasks.[/yellow]")
        console.print("Use 'xbot schedule add' to create a new task.")
        return

    table = Table(title="Scheduled Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Cron", style="yellow")
    table.add_column("Command", style="white")
    table.add_column("Description", style="white")
    table.add_column("Enabled", style="green")
    table.add_column("Next Run", style="blue")

    for task in tasks:
        next_run = scheduler.get_next_run_time(task.id)
        table.add_row(
            task.id,
            escape(str(task.cron_expression)),
            escape(task.command),
            escape(task.description) or "-",
            "Yes" if task.enabled else "No",
            next_run.strftime(TIME_FORMAT) if next_run else "N/A",
        )

    console.print(table)
    console.print(f"Total: {len(tasks)} task(s)")


def cmd_schedule_add(args: argparse.Namespace) -> None:
    """Add a new scheduled task."""
    scheduler = _create_scheduler(args)

    task_id = args.id
    if not task_id and args.name:
        task_id = TaskRepository.generate_task_id(args.name)

    cron = args.cron
    command = args.command_line
    description = args.description or ""

    if not (task_id and cron and command):
        console.print("[bold]Add New Scheduled Task[/bold]")
        if not task_id:
            default_id = TaskRepository.generate_task_id("task")
            task_id = console.input(f"Task ID [{default_id}]: ").strip() or default_id
        if not cron:
            cron = console.input('Cron expression (e.g. "0 0 * * *" for daily at midnight): ').strip()
        if not command:
            command = console.input("Command to execute: ").strip()
        if not description:
            description = console.input("Description (optional): ").strip()

    if not (task_id and cron and command):
        console.print("[red]Error:[/red] Task ID, cron expression, and command are required")
        console.print("Usage: xbot schedule add --id <id> --cron <expression> --command <command>")
        sys.exit(1)

    if not TaskRepository.is_valid_task_id(task_id):
        console.print(f"[red]Invalid task ID:[/red] {escape(task_id)}")
        console.print("Task ID must contain only lowercase letters, numbers, and hyphens")
        sys.exit(1)

    task = Task(
        id=task_id,
        command=command,
        cron_expression=cron,
        description=description,
        enabled=not args.disabled,
        working_directory=args.working_dir,
        output_file=args.output,
        error_file=args.error,
    )

    if not scheduler.validate_task(task):
        console.print("[red]Error:[/red] Invalid task configuration")
        sys.exit(1)

    scheduler.add_task(task)

    console.print(f"[green]Added task:[/green] {task.id}")
    console.print(f"  Cron: {escape(str(task.cron_expression))}")
    console.print(f"  Command: {escape(task.command)}")
    next_run = scheduler.get_next_run_time(task.id)
    if next_run:
        console.print(f"  Next run: {next_run.strftime(TIME_FORMAT)}")
    _sync_hint()


def cmd_schedule_remove(args: argparse.Namespace) -> None:
    """Remove a scheduled task."""
    scheduler = _create_scheduler(args)
    task = scheduler.get_task(args.task_id)

    if not args.yes:
        response = console.input(f"Remove task '{task.id}'? [y/N]: ").strip().lower()
        if response != "y":
            console.print("[dim]Aborted[/dim]")
            return

    scheduler.remove_task(task.id)
    console.print(f"[green]Removed:[/green] {task.id}")
    _sync_hint()


def cmd_schedule_run(args: argparse.Namespace) -> None:
    """Run a scheduled task immediately."""
    scheduler = _create_scheduler(args)

    console.print(f"[bold blue]Running task:[/bold blue] {escape(args.task_id)}")
    exit_code = scheduler.run_task(args.task_id)

    if exit_code == 0:
        console.print(f"[green]Completed:[/green] {escape(args.task_id)}")
    else:
        console.print(f"[red]Failed:[/red] {escape(args.task_id)} (exit code {exit_code})")
    sys.exit(exit_code)


def cmd_schedule_enable(args: argparse.Namespace) -> None:
    """Enable a scheduled task."""
    scheduler = _create_scheduler(args)
    scheduler.enable_task(args.task_id)
    console.print(f"[green]Enabled:[/green] {escape(args.task_id)}")
    _sync_hint()


def cmd_schedule_disable(args: argparse.Namespace) -> None:
    """Disable a scheduled task."""
    scheduler = _create_scheduler(args)
    scheduler.disable_task(args.task_id)
    console.print(f"[yellow]Disabled:[/yellow] {escape(args.task_id)}")
    _sync_hint()


def cmd_schedule_next(args: argparse.Namespace) -> None:
    """Show upcoming run times of a task."""
    scheduler = _create_scheduler(args)
    task = scheduler.get_task(args.task_id)

    try:
        runs = task.cron_expression.next_run_dates(args.count)
    except NoMatchFound:
        console.print(f"[yellow]Schedule never matches:[/yellow] {escape(str(task.cron_expression))}")
        return

    console.print(f"[bold]{task.id}[/bold] ({escape(str(task.cron_expression))})")
    for run in runs:
        console.print(f"  {run.strftime(TIME_FORMAT)}")


def cmd_schedule_sync(args: argparse.Namespace) -> None:
    """Write enabled tasks into the system crontab."""
    scheduler = _create_scheduler(args)

    console.print("[bold blue]Synchronizing tasks to system crontab...[/bold blue]")
    try:
        scheduler.sync_to_system_crontab()
    except CrontabUnavailable as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        console.print("Make sure crontab is installed and you have permission to modify it.")
        sys.exit(1)

    console.print("[green]Tasks synchronized[/green]")
    enabled = sorted(scheduler.repository.enabled_tasks(), key=lambda task: task.id)
    if enabled:
        console.print(f"Enabled tasks: {len(enabled)}")
        for task in enabled:
            console.print(f"  - {task.id}: {escape(str(task.cron_expression))}")


def cmd_version(args: argparse.Namespace) -> None:
    """Show version information."""
    console.print(f"xbot v{__version__}")


def main() -> NoReturn:
    """Main entry point for the xbot CLI."""
    global console

    parser = argparse.ArgumentParser(
        prog="xbot",
        description="xbot - project maintenance utilities",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    parser.add_argument(
        "--project-root",
        help="Project directory (default: $XBOT_PROJECT_ROOT or the current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Version command
    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    # Schedule command group
    schedule_parser = subparsers.add_parser(
        "schedule",
        help="Manage scheduled tasks (cron jobs)",
        description="Create and manage scheduled tasks and sync them into the system crontab.",
    )
    schedule_subparsers = schedule_parser.add_subparsers(
        dest="schedule_command", metavar="SUBCOMMAND"
    )

    # schedule list
    schedule_list = schedule_subparsers.add_parser("list", help="List scheduled tasks")
    schedule_list.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    schedule_list.set_defaults(func=cmd_schedule_list)

    # schedule add
    schedule_add = schedule_subparsers.add_parser("add", help="Create a new scheduled task")
    schedule_add.add_argument("-i", "--id", help="Task ID (lowercase letters, numbers, hyphens)")
    schedule_add.add_argument("--name", help="Derive the task ID from a name")
    schedule_add.add_argument(
        "-c", "--cron", help='Cron expression (e.g. "0 0 * * *" for daily at midnight)'
    )
    schedule_add.add_argument("-m", "--command", dest="command_line", help="Command to execute")
    schedule_add.add_argument("-d", "--description", help="Task description")
    schedule_add.add_argument("-w", "--working-dir", help="Working directory for the task")
    schedule_add.add_argument("-o", "--output", help="Output file path")
    schedule_add.add_argument("-e", "--error", help="Error file path")
    schedule_add.add_argument("--disabled", action="store_true", help="Create in disabled state")
    schedule_add.set_defaults(func=cmd_schedule_add)

    # schedule remove
    schedule_remove = schedule_subparsers.add_parser("remove", help="Remove a task")
    schedule_remove.add_argument("task_id", help="Task ID")
    schedule_remove.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    schedule_remove.set_defaults(func=cmd_schedule_remove)

    # schedule run
    schedule_run = schedule_subparsers.add_parser("run", help="Run a task immediately")
    schedule_run.add_argument("task_id", help="Task ID")
    schedule_run.set_defaults(func=cmd_schedule_run)

    # schedule enable
    schedule_enable = schedule_subparsers.add_parser("enable", help="Enable a task")
    schedule_enable.add_argument("task_id", help="Task ID")
    schedule_enable.set_defaults(func=cmd_schedule_enable)

    # schedule disable
    schedule_disable = schedule_subparsers.add_parser("disable", help="Disable a task")
    schedule_disable.add_argument("task_id", help="Task ID")
    schedule_disable.set_defaults(func=cmd_schedule_disable)

    # schedule next
    schedule_next = schedule_subparsers.add_parser("next", help="Show upcoming run times")
    schedule_next.add_argument("task_id", help="Task ID")
    schedule_next.add_argument(
        "-n", "--count", type=int, default=5, help="Number of run times (default: 5)"
    )
    schedule_next.set_defaults(func=cmd_schedule_next)

    # schedule sync
    schedule_sync = schedule_subparsers.add_parser(
        "sync",
        help="Write enabled tasks into the system crontab",
    )
    schedule_sync.set_defaults(func=cmd_schedule_sync)

    args = parser.parse_args()

    try:
        overrides = {"project_root": args.project_root} if args.project_root else {}
        settings = Settings(**overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        sys.exit(1)

    console = _make_console(settings.color)
    setup_logging(args.verbose)
    args.settings = settings

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "schedule" and args.schedule_command is None:
        schedule_parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except SchedulerError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
