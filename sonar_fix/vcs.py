"""Read-only git helpers.

Every helper shells out to ``git`` in *workdir* and degrades instead of
raising: callers only need the answers to decide whether SonarCloud line
numbers can still be trusted.
"""

import logging
import subprocess
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"


def _git(workdir: str | Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=str(workdir),
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout.strip()


def current_branch(workdir: str | Path) -> str:
    """Return the checked-out branch name, or ``"master"`` when unknown."""
    try:
        branch = _git(workdir, "rev-parse", "--abbrev-ref", "HEAD")
    except (OSError, subprocess.CalledProcessError) as exc:
        log.warning("Unable to read the current git branch: %s", exc)
        return DEFAULT_BRANCH
    return branch or DEFAULT_BRANCH


def current_commit(workdir: str | Path) -> str | None:
    """Return the full hash of HEAD, or ``None`` when it cannot be read."""
    try:
        return _git(workdir, "rev-parse", "HEAD") or None
    except (OSError, subprocess.CalledProcessError) as exc:
        log.error("Unable to read the current commit: %s", exc)
        return None


def is_modified_since(workdir: str | Path, path: str | Path, commit_hash: str | None) -> bool:
    """Return True if *path* differs from *commit_hash* in the working tree.

    ``git diff --quiet`` exits non-zero both for a real difference and for an
    error such as an unknown revision; both count as modified.
    """
    if not commit_hash:
        return True
    try:
        _git(workdir, "diff", "--quiet", commit_hash, "--", str(path))
    except (OSError, subprocess.CalledProcessError):
        return True
    return False


def repository_name(workdir: str | Path) -> str | None:
    """Return the name of the repository's top-level directory."""
    try:
        toplevel = _git(workdir, "rev-parse", "--show-toplevel")
    except (OSError, subprocess.CalledProcessError) as exc:
        log.debug("Not inside a git repository: %s", exc)
        return None
    name = Path(toplevel).name if toplevel else ""
    return name or None
