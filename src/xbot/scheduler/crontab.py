"""Access to the user's system crontab.

Scheduled tasks are written into a managed block delimited by marker
comments. Lines outside the block are left untouched, so entries added by
hand or by other tools survive a sync.
"""

import logging
import subprocess

from xbot.scheduler.errors import CrontabUnavailable

logger = logging.getLogger(__name__)

BLOCK_BEGIN = "# BEGIN xbot scheduled tasks"
BLOCK_END = "# END xbot scheduled tasks"
BLOCK_NOTICE = "# Managed by 'xbot schedule sync'; edits inside this block are overwritten."


def _strip_trailing_blank(lines: list[str]) -> None:
    while lines and not lines[-1].strip():
        lines.pop()


def render_managed_block(entries: list[str]) -> list[str]:
    """Wrap crontab entries in the managed block markers."""
    return [BLOCK_BEGIN, BLOCK_NOTICE, *entries, BLOCK_END]


def replace_managed_block(current: str, entries: list[str]) -> str:
    """Replace the managed block in a crontab.

    The block keeps its position if present and is appended otherwise. With
    no entries the block is removed altogether.

    Args:
        current: Existing crontab text.
        entries: Crontab lines to place in the block.

    Returns:
        The new crontab text, newline-terminated unless empty.

    Raises:
        CrontabUnavailable: If the crontab has a begin marker without an
            end marker.
    """
    lines = current.splitlines()
    block = render_managed_block(entries) if entries else []

    if BLOCK_BEGIN in lines:
        start = lines.index(BLOCK_BEGIN)
        try:
            end = lines.index(BLOCK_END, start)
        except ValueError:
            raise CrontabUnavailable(
                f"Crontab has '{BLOCK_BEGIN}' without '{BLOCK_END}'; fix it with 'crontab -e'"
            ) from None
        lines[start:end + 1] = block
    else:
        _strip_trailing_blank(lines)
        if block and lines:
            lines.append("")
        lines.extend(block)

    # Repeated syncs must not grow the file
    _strip_trailing_blank(lines)
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


class SystemCrontab:
    """Reads and installs the current user's crontab via the ``crontab`` tool.

    Example:
        crontab = SystemCrontab()
        text = crontab.read()
        crontab.install(text + "0 * * * * /usr/bin/true\\n")
    """

    def __init__(self, command: str = "crontab", timeout: float = 30) -> None:
        """Initialize the crontab wrapper.

        Args:
            command: Name or path of the ``crontab`` executable.
            timeout: Seconds to wait for the tool.
        """
        self._command = command
        self._timeout = timeout

    def _run(self, args: list[str], input_text: str | None = None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self._command, *args],
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            raise CrontabUnavailable(f"crontab command not found: {self._command}") from e
        except subprocess.TimeoutExpired as e:
            raise CrontabUnavailable(
                f"crontab command timed out after {self._timeout} seconds"
            ) from e
        except OSError as e:
            raise CrontabUnavailable(f"Failed to run {self._command}: {e}") from e

    def read(self) -> str:
        """Return the current crontab, or an empty string if there is none."""
        result = self._run(["-l"])

        if result.returncode != 0:
            if "no crontab" in result.stderr.lower():
                return ""
            raise CrontabUnavailable(
                f"Failed to read crontab: {result.stderr.strip() or f'exit code {result.returncode}'}"
            )

        return result.stdout

    def install(self, content: str) -> None:
        """Replace the whole crontab with ``content``."""
        result = self._run(["-"], input_text=content)

        if result.returncode != 0:
            raise CrontabUnavailable(
                f"Failed to install crontab: {result.stderr.strip() or f'exit code {result.returncode}'}"
            )

        logger.info(f"Installed crontab ({len(content.splitlines())} lines)")
