"""Shared fixtures for the scheduler tests."""

from pathlib import Path

import pytest


def _write_fake_crontab(tmp_path: Path, install_fails: bool) -> tuple[str, Path]:
    store = tmp_path / "crontab.txt"
    script = tmp_path / "fake-crontab"

    if install_fails:
        install = "echo 'crontabs/tester: Permission denied' >&2; exit 1"
    else:
        install = f'cat > "{store}"'

    script.write_text(
        "#!/bin/sh\n"
        'if [ "$1" = "-l" ]; then\n'
        f'  if [ -f "{store}" ]; then cat "{store}"; '
        "else echo 'no crontab for tester' >&2; exit 1; fi\n"
        "else\n"
        f"  {install}\n"
        "fi\n"
    )
    script.chmod(0o755)
    return str(script), store


@pytest.fixture
def fake_crontab(tmp_path):
    """A ``crontab`` stand-in that keeps its table in ``tmp_path/crontab.txt``.

    Returns:
        Tuple of (command path, store path).
    """
    return _write_fake_crontab(tmp_path, install_fails=False)


@pytest.fixture
def readonly_crontab(tmp_path):
    """A ``crontab`` stand-in that refuses every install."""
    return _write_fake_crontab(tmp_path, install_fails=True)
