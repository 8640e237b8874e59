"""Git helpers for tagging tracked runs."""

import subprocess
from pathlib import Path


def get_commit_id(cwd: Path | None = None, short: bool = False) -> str:
    """Return the current commit id, or "unknown" outside a git checkout."""
    command = ["git", "rev-parse", "--short", "HEAD"] if short else ["git", "rev-parse", "HEAD"]
    try:
        output = subprocess.check_output(command, cwd=cwd, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return output.decode("utf-8").strip()
