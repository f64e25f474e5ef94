"""Inline SonarCloud markers.

``annotate`` inserts one ``// SonarCloud: <rule> - <message>`` line above each
flagged line; ``strip_annotations`` removes every such line again so the
operation can be repeated on an already annotated file.

Line numbers always refer to the source as analysed: a marker is anchored to
its original line, however many markers were inserted above it. Issues are
not sorted; several issues on one line keep their list order, top to bottom.
"""

import re
from typing import Iterable, Mapping

from sonar_fix.issues import is_source_available
from sonar_fix.models import Issue

MARKER_PREFIX = "// SonarCloud:"
MARKER_RE = re.compile(r"//\s*SonarCloud:")

_INDENT_RE = re.compile(r"^\s*")


def marker_for(issue: Issue) -> str:
    return f"{MARKER_PREFIX} {issue.rule} - {issue.message}"


def annotate(
    source_lines: list[str],
    issues: Iterable[Issue],
    indent: bool = False,
) -> list[str]:
    """Return a new list with a marker above each issue's line.

    Issues without a line, or whose line is outside the source, are skipped.
    With ``indent=True`` the marker takes the indentation of the line it
    annotates.
    """
    above: dict[int, list[Issue]] = {}
    for issue in issues:
        if issue.line is None or not 1 <= issue.line <= len(source_lines):
            continue
        above.setdefault(issue.line - 1, []).append(issue)

    lines: list[str] = []
    for index, line in enumerate(source_lines):
        prefix = _INDENT_RE.match(line).group(0) if indent else ""
        lines.extend(prefix + marker_for(issue) for issue in above.get(index, ()))
        lines.append(line)
    return lines


def strip_annotations(text: str) -> str:
    """Remove every line that carries a SonarCloud marker."""
    kept = [line for line in text.split("\n") if not MARKER_RE.search(line)]
    return "\n".join(kept)


def annotate_files(
    issues_by_file: Mapping[str, list[Issue]],
    sources: Mapping[str, list[str]],
) -> dict[str, str]:
    """Annotate every file with its issues; files without source are skipped."""
    annotated: dict[str, str] = {}
    for file_key, file_issues in issues_by_file.items():
        lines = sources.get(file_key)
        if not is_source_available(lines):
            continue
        annotated[file_key] = "\n".join(annotate(lines, file_issues))
    return annotated
