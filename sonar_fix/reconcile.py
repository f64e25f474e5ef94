"""Applying new content back to the editor or the workspace.

Line numbers reported by SonarCloud are only trustworthy for the commit that
was analysed. Before touching a buffer the pipeline compares that commit with
the local checkout and lets the user cancel.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from sonar_fix import vcs
from sonar_fix.errors import WorkspaceError
from sonar_fix.host import Document, Host
from sonar_fix.models import split_file_key

log = logging.getLogger(__name__)

CONTINUE = "Continue anyway"
CANCEL   = "Cancel"

_UNSAVED  = "Please save the file before continuing. "
_MODIFIED = "There are local modifications that have not been analysed. "
_OUTDATED = "The local file may be out of date with the last SonarCloud analysis. "
_ADVICE   = "Consider committing, pushing and waiting for a new analysis first."


@dataclass(frozen=True)
class Staleness:
    current_commit: str | None
    last_analyzed_commit: str | None
    warning: str | None = None

    @property
    def is_stale(self) -> bool:
        return self.warning is not None


def check_staleness(
    workdir: str | Path,
    document: Document | None,
    last_analyzed_commit: str | None,
) -> Staleness:
    """Compare the analysed commit with the local checkout and the open buffer."""
    current = vcs.current_commit(workdir)
    reason = None
    if document is not None and document.is_dirty:
        reason = _UNSAVED
    elif document is not None and vcs.is_modified_since(workdir, document.path, last_analyzed_commit):
        reason = _MODIFIED
    elif last_analyzed_commit != current:
        reason = _OUTDATED

    warning = reason + _ADVICE if reason else None
    if warning:
        log.info("Stale analysis: analysed=%s current=%s", last_analyzed_commit, current)
    return Staleness(current, last_analyzed_commit, warning)


def confirm_fresh(host: Host, staleness: Staleness) -> bool:
    """Return False when the user cancels a stale operation."""
    if not staleness.is_stale:
        return True
    return host.confirm(staleness.warning, CONTINUE, CANCEL)


def apply_content(host: Host, document: Document, text: str) -> None:
    """Replace the whole buffer in one edit."""
    host.replace_content(document, text)


# ---------------------------------------------------------------------------
# Workspace files
# ---------------------------------------------------------------------------

def find_file_in_workspace(workspace_root: str | Path, relative_path: str) -> Path | None:
    """Return the first file under *workspace_root* whose path ends with *relative_path*."""
    parts = tuple(p for p in relative_path.replace("\\", "/").split("/") if p)
    if not parts:
        return None
    root = Path(workspace_root)
    direct = root.joinpath(*parts)
    if direct.is_file():
        return direct
    for candidate in sorted(root.rglob(parts[-1])):
        if ".git" in candidate.parts:
            continue
        if candidate.is_file() and candidate.parts[-len(parts):] == parts:
            return candidate
    return None


def write_file_content(
    workspace_root: str | Path,
    file_key: str,
    project_id: str,
    text: str,
) -> Path:
    """Write *text* to the workspace file identified by *file_key*.

    Raises:
        WorkspaceError: no file in the workspace matches the key's path, or it
                        cannot be written.
    """
    _, relative_path = split_file_key(file_key, project_id)
    path = find_file_in_workspace(workspace_root, relative_path)
    if path is None:
        raise WorkspaceError(f"File not found in workspace: {relative_path}")
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise WorkspaceError(f"Unable to write '{path}': {exc}") from exc
    log.info("Updated %s", path)
    return path
