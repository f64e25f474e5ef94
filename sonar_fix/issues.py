"""Issue repository operations on top of ``SonarClient``.

Functions:
    fetch_issues(client, project_id, branch)                 -> list[Issue]
    group_issues_by_file(issues)                             -> dict[str, list[Issue]]
    fetch_source_for_files(client, branch, file_keys)        -> dict[str, list[str]]
    fetch_last_analyzed_commit(client, project_id, branch)   -> str | None
    build_issue_report(project_id, branch, by_file, sources) -> dict

Branch fallback: SonarCloud projects created before the ``main`` naming
convention analyse ``master``. When a lookup on ``main`` comes back empty it
is retried exactly once on ``master``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable

from sonar_fix.client import SonarClient
from sonar_fix.errors import ParseError, SonarFixError
from sonar_fix.models import SEVERITIES, SOURCE_UNAVAILABLE, TYPES, Issue

log = logging.getLogger(__name__)

PAGE_SIZE = 500
MAX_SOURCE_WORKERS = 8

FALLBACK_FROM = "main"
FALLBACK_TO   = "master"


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

def _search_issues(client: SonarClient, component: str, branch: str) -> list[Issue]:
    params = {
        "componentKeys":    component,
        "branch":           branch,
        "ps":               PAGE_SIZE,
        "additionalFields": "_all",
        "statuses":         "OPEN",
    }
    data = client.get("/api/issues/search", params)
    raw_issues = data.get("issues")
    if not isinstance(raw_issues, list):
        raise ParseError("Response from /api/issues/search has no 'issues' list")
    try:
        return [Issue.from_json(raw) for raw in raw_issues]
    except (AttributeError, TypeError, ValueError) as exc:
        raise ParseError(f"Malformed issue in /api/issues/search response: {exc}") from exc


def fetch_issues(
    client: SonarClient,
    project_id: str,
    branch: str,
    component: str | None = None,
) -> list[Issue]:
    """Return the open issues of a project (or of one file component) on *branch*."""
    target = component or project_id
    issues = _search_issues(client, target, branch)
    if not issues and branch == FALLBACK_FROM:
        log.info("No issues on '%s', retrying on '%s'", FALLBACK_FROM, FALLBACK_TO)
        issues = _search_issues(client, target, FALLBACK_TO)
    return issues


def group_issues_by_file(issues: Iterable[Issue]) -> dict[str, list[Issue]]:
    """Group issues by component key, keeping arrival order inside each group."""
    grouped: dict[str, list[Issue]] = {}
    for issue in issues:
        grouped.setdefault(issue.component, []).append(issue)
    return grouped


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def _fetch_source(client: SonarClient, branch: str, file_key: str) -> list[str]:
    try:
        text = client.get_text("/api/sources/raw", {"key": file_key, "branch": branch})
    except SonarFixError as exc:
        log.warning("Source unavailable for %s: %s", file_key, exc)
        return [SOURCE_UNAVAILABLE]
    return text.split("\n")


def fetch_source_for_files(
    client: SonarClient,
    branch: str,
    file_keys: Iterable[str],
) -> dict[str, list[str]]:
    """Fetch the raw source of every file key in parallel.

    A failed file gets ``[SOURCE_UNAVAILABLE]`` instead of failing the batch.
    """
    keys = list(dict.fromkeys(file_keys))
    if not keys:
        return {}
    workers = min(MAX_SOURCE_WORKERS, len(keys))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = pool.map(lambda key: _fetch_source(client, branch, key), keys)
        return dict(zip(keys, results))


def is_source_available(lines: list[str] | None) -> bool:
    return bool(lines) and lines != [SOURCE_UNAVAILABLE]


# ---------------------------------------------------------------------------
# Analyses
# ---------------------------------------------------------------------------

def _search_analyses(client: SonarClient, project_id: str, branch: str) -> list[dict]:
    data = client.get(
        "/api/project_analyses/search", {"project": project_id, "branch": branch}
    )
    analyses = data.get("analyses")
    if analyses is None:
        return []
    if not isinstance(analyses, list):
        raise ParseError("Response from /api/project_analyses/search has no 'analyses' list")
    return analyses


def fetch_last_analyzed_commit(client: SonarClient, project_id: str, branch: str) -> str | None:
    """Return the git revision of the most recent analysis, if any."""
    analyses = _search_analyses(client, project_id, branch)
    if not analyses and branch == FALLBACK_FROM:
        log.info("No analyses on '%s', retrying on '%s'", FALLBACK_FROM, FALLBACK_TO)
        analyses = _search_analyses(client, project_id, FALLBACK_TO)
    if not analyses or not isinstance(analyses[0], dict):
        return None
    return analyses[0].get("revision")


# ---------------------------------------------------------------------------
# Viewer report
# ---------------------------------------------------------------------------

def _build_summary(issues: list[Issue]) -> dict:
    by_severity = {s: 0 for s in SEVERITIES}
    by_type     = {t: 0 for t in TYPES}

    for issue in issues:
        if issue.severity in by_severity:
            by_severity[issue.severity] += 1
        if issue.type in by_type:
            by_type[issue.type] += 1

    return {
        "total":       len(issues),
        "by_severity": by_severity,
        "by_type":     by_type,
    }


def build_issue_report(
    project_id: str,
    branch: str,
    issues_by_file: dict[str, list[Issue]],
    sources: dict[str, list[str]],
) -> dict:
    """Structured data handed to the presentation surface."""
    all_issues = [issue for file_issues in issues_by_file.values() for issue in file_issues]
    files = [
        {
            "file_key": file_key,
            "issues":   [issue.to_dict() for issue in file_issues],
            "source":   sources.get(file_key, []),
        }
        for file_key, file_issues in issues_by_file.items()
    ]
    return {
        "project_key":  project_id,
        "branch":       branch,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "summary":      _build_summary(all_issues),
        "files":        files,
    }
