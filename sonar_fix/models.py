"""Data models shared by the pipeline.

Contains:
    - Issue          one open SonarCloud issue
    - JobExecution   one StackSpot quick command execution
    - file key helpers (``component_key``, ``split_file_key``)
"""

from dataclasses import dataclass, field
from typing import Any

SEVERITIES = ("BLOCKER", "CRITICAL", "MAJOR", "MINOR", "INFO")
TYPES      = ("BUG", "VULNERABILITY", "CODE_SMELL")

#: Substituted for the lines of a file whose source could not be fetched
SOURCE_UNAVAILABLE = "<source unavailable>"

STATUS_COMPLETED = "COMPLETED"
STATUS_PENDING   = "PENDING"


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Issue:
    component: str
    rule: str
    message: str
    line: int | None = None
    severity: str | None = None
    type: str | None = None
    key: str | None = None
    status: str | None = None
    effort: str | None = None

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "Issue":
        """Build an Issue from a raw ``/api/issues/search`` entry."""
        line = raw.get("line")
        return cls(
            component=raw.get("component", ""),
            rule=raw.get("rule", ""),
            message=raw.get("message", ""),
            line=int(line) if line is not None else None,
            severity=raw.get("severity"),
            type=raw.get("type"),
            key=raw.get("key"),
            status=raw.get("status"),
            effort=raw.get("effort"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key":       self.key,
            "rule":      self.rule,
            "severity":  self.severity,
            "type":      self.type,
            "component": self.component,
            "line":      self.line,
            "message":   self.message,
            "effort":    self.effort,
            "status":    self.status,
        }


# ---------------------------------------------------------------------------
# File keys
# ---------------------------------------------------------------------------

def split_file_key(file_key: str, project_id: str | None = None) -> tuple[str, str]:
    """Split ``<project>:<path>`` on the first colon.

    Returns ``(project, relative_path)``. A leading path segment that repeats
    the project id is dropped, together with any leading separators, so
    ``"proj:proj/src/a.ts"`` yields ``("proj", "src/a.ts")``.
    """
    project, _, path = file_key.partition(":")
    prefix = project_id or project
    if path.startswith(prefix):
        rest = path[len(prefix):]
        if not rest or rest[0] in "/\\":
            path = rest
    return project, path.lstrip("/\\")


def component_key(project_id: str, relative_path: str) -> str:
    """Build the SonarCloud component key for a workspace-relative path.

    Anything before the first occurrence of the project id in the path is
    dropped, matching how keys are built for checkouts nested in a folder
    named after the project.
    """
    path = relative_path.replace("\\", "/")
    index = path.find(project_id)
    if index > 0:
        path = path[index:]
    return f"{project_id}:{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# Quick command executions
# ---------------------------------------------------------------------------

@dataclass
class JobExecution:
    execution_id: str
    status: str = STATUS_PENDING
    result: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @classmethod
    def from_json(cls, execution_id: str, payload: dict[str, Any]) -> "JobExecution":
        progress = payload.get("progress") or {}
        status = progress.get("status") if isinstance(progress, dict) else None
        return cls(
            execution_id=execution_id,
            status=status or STATUS_PENDING,
            result=payload.get("result"),
            raw=payload,
        )
