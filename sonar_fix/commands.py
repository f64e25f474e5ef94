"""Top-level commands.

Each command resolves what it needs (credentials, branch), runs its pipeline
steps and reports through the host. A command returns ``True`` when it
applied or presented something and ``False`` when it was aborted gracefully
(no open file, missing credential, cancelled prompt or staleness warning).
Errors from the services propagate to the caller untouched; nothing is
written to the editor before every remote step has succeeded.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

from sonar_fix import vcs
from sonar_fix.annotate import annotate, annotate_files, strip_annotations
from sonar_fix.client import SonarClient
from sonar_fix.config import CredentialStore
from sonar_fix.host import ERROR, INFO, Document, Host, PromptSpec
from sonar_fix.issues import (
    build_issue_report,
    fetch_issues,
    fetch_last_analyzed_commit,
    fetch_source_for_files,
    group_issues_by_file,
    is_source_available,
)
from sonar_fix.models import Issue, component_key
from sonar_fix.quick_command import QuickCommandClient
from sonar_fix.reconcile import apply_content, check_staleness, confirm_fresh, write_file_content
from sonar_fix.session import Session, TokenCache

log = logging.getLogger(__name__)

SonarClientFactory = Callable[[str, str], SonarClient]
QuickCommandFactory = Callable[[str, str, str, TokenCache], QuickCommandClient]


def _default_quick_command_factory(
    client_id: str, client_secret: str, realm: str, token_cache: TokenCache,
) -> QuickCommandClient:
    return QuickCommandClient(client_id, client_secret, realm=realm, token_cache=token_cache)


class Pipeline:
    """Runs the commands against one host, credential store and session."""

    def __init__(
        self,
        host: Host,
        store: CredentialStore,
        session: Session | None = None,
        workdir: str | Path = ".",
        sonar_client_factory: SonarClientFactory = SonarClient,
        quick_command_factory: QuickCommandFactory = _default_quick_command_factory,
        cancel: threading.Event | None = None,
    ) -> None:
        self.host = host
        self.store = store
        self.session = session or Session()
        self.workdir = Path(workdir)
        self._sonar_client_factory = sonar_client_factory
        self._quick_command_factory = quick_command_factory
        self.cancel = cancel

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add_comments(self, branch: str | None = None) -> bool:
        """Insert a marker above every flagged line of the active document."""
        document = self._active_document("No file open to add comments to.")
        if document is None:
            return False
        sonar = self._sonar()
        if sonar is None:
            return False
        project_id, client = sonar
        branch = self._resolve_branch(branch)
        if branch is None:
            return False

        issues = self._document_issues(client, project_id, branch, document)
        staleness = check_staleness(
            self.workdir, document, fetch_last_analyzed_commit(client, project_id, branch)
        )
        if not confirm_fresh(self.host, staleness):
            self.host.show_message(INFO, "Cancelled.")
            return False

        cleaned = strip_annotations(document.text).split("\n")
        apply_content(self.host, document, "\n".join(annotate(cleaned, issues, indent=True)))

        if staleness.warning:
            self.host.show_message(INFO, "Comments added, but " + staleness.warning[0].lower()
                                   + staleness.warning[1:])
        else:
            self.host.show_message(INFO, "SonarCloud comments added to the file.")
        return True

    def strip_comments(self) -> bool:
        """Remove every marker from the active document."""
        document = self._active_document("No file open to remove comments from.")
        if document is None:
            return False
        cleaned = strip_annotations(document.text)
        if cleaned == document.text:
            self.host.show_message(INFO, "No SonarCloud comments found.")
            return False
        apply_content(self.host, document, cleaned)
        self.host.show_message(INFO, "SonarCloud comments removed from the file.")
        return True

    def resolve_current_file(self, branch: str | None = None) -> bool:
        """Annotate the active document with its issues and let the AI fix them."""
        document = self._active_document("No file open to resolve issues.")
        if document is None:
            return False
        sonar = self._sonar()
        if sonar is None:
            return False
        project_id, client = sonar
        branch = self._resolve_branch(branch)
        if branch is None:
            return False
        quick = self._quick_command()
        if quick is None:
            return False
        quick_client, command = quick

        self.host.report_progress("Obtaining access token")
        quick_client.get_token()

        self.host.report_progress("Fetching SonarCloud issues")
        issues = self._document_issues(client, project_id, branch, document)
        key = component_key(project_id, self._relative_path(document))
        lines = fetch_source_for_files(client, branch, [key]).get(key)
        if not is_source_available(lines):
            log.info("Using the local text of %s", document.path)
            lines = document.lines

        staleness = check_staleness(
            self.workdir, document, fetch_last_analyzed_commit(client, project_id, branch)
        )
        if not confirm_fresh(self.host, staleness):
            self.host.show_message(INFO, "Cancelled.")
            return False

        self.host.report_progress("Commenting the code")
        content = "\n".join(annotate(lines, issues))

        resolved = self._run_quick_command(quick_client, command, content)

        self.host.report_progress("Applying changes")
        apply_content(self.host, document, resolved)
        self.host.show_message(INFO, "SonarCloud issues resolved successfully.")
        return True

    def resolve_commented_file(self) -> bool:
        """Send the active document, markers included, to the AI as it is."""
        document = self._active_document("No file open to resolve issues.")
        if document is None:
            return False
        quick = self._quick_command()
        if quick is None:
            return False
        quick_client, command = quick

        self.host.report_progress("Obtaining access token")
        quick_client.get_token()

        resolved = self._run_quick_command(quick_client, command, document.text)

        self.host.report_progress("Applying changes")
        apply_content(self.host, document, resolved)
        self.host.show_message(INFO, "SonarCloud issues resolved successfully.")
        return True

    def resolve_all(self, branch: str | None = None) -> bool:
        """Resolve the issues of every file of the project and rewrite the files."""
        sonar = self._sonar()
        if sonar is None:
            return False
        project_id, client = sonar
        branch = self._resolve_branch(branch)
        if branch is None:
            return False
        quick = self._quick_command()
        if quick is None:
            return False
        quick_client, command = quick

        self.host.report_progress("Fetching SonarCloud issues")
        issues_by_file = group_issues_by_file(fetch_issues(client, project_id, branch))

        self.host.report_progress("Commenting issues in files")
        sources = fetch_source_for_files(client, branch, issues_by_file)
        annotated = annotate_files(issues_by_file, sources)

        staleness = check_staleness(
            self.workdir, None, fetch_last_analyzed_commit(client, project_id, branch)
        )
        if not confirm_fresh(self.host, staleness):
            self.host.show_message(INFO, "Cancelled.")
            return False

        quick_client.get_token()
        total = len(annotated)
        for index, (file_key, content) in enumerate(annotated.items(), start=1):
            self.host.report_progress(f"Resolving issues for {file_key} ({index}/{total})")
            resolved = self._run_quick_command(quick_client, command, content)
            write_file_content(self.workdir, file_key, project_id, resolved)

        self.host.show_message(INFO, f"Resolved SonarCloud issues in {total} file(s).")
        return True

    def show_issues(self, branch: str | None = None) -> bool:
        """Hand the project's issues, grouped by file with their source, to the host."""
        sonar = self._sonar()
        if sonar is None:
            return False
        project_id, client = sonar
        branch = self._resolve_branch(branch)
        if branch is None:
            return False

        issues_by_file = group_issues_by_file(fetch_issues(client, project_id, branch))
        sources = fetch_source_for_files(client, branch, issues_by_file)
        self.host.present(build_issue_report(project_id, branch, issues_by_file, sources))
        return True

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _active_document(self, missing_message: str) -> Document | None:
        document = self.host.get_active_document()
        if document is None:
            self.host.show_message(ERROR, missing_message)
        return document

    def _sonar(self) -> tuple[str, SonarClient] | None:
        project_id = self.store.project_id()
        if not project_id:
            self.host.show_message(ERROR, "SonarCloud project id not found.")
            return None
        token = self.store.access_token()
        if not token:
            self.host.show_message(ERROR, "SonarCloud access token not provided.")
            return None
        log.debug("Using SonarCloud project %s", project_id)
        return project_id, self._sonar_client_factory(self.store.sonar_url(), token)

    def _quick_command(self) -> tuple[QuickCommandClient, str] | None:
        client_id = self.store.client_id()
        if not client_id:
            self.host.show_message(ERROR, "StackSpot client id not provided.")
            return None
        client_secret = self.store.client_secret()
        if not client_secret:
            self.host.show_message(ERROR, "StackSpot client secret not provided.")
            return None
        command = self.store.quick_command()
        if not command:
            self.host.show_message(ERROR, "StackSpot quick command not provided.")
            return None
        client = self._quick_command_factory(
            client_id, client_secret, self.store.realm(), self.session.token_cache
        )
        return client, command

    def _resolve_branch(self, branch: str | None) -> str | None:
        branch = branch or vcs.current_branch(self.workdir) or self.session.last_used_branch
        if not branch:
            branch = self.host.prompt(PromptSpec(
                message="Enter the branch to analyse",
                placeholder="e.g. main, master, develop, feature/new-feature",
            ))
        if not branch:
            log.info("Branch selection cancelled")
            return None
        self.session.last_used_branch = branch
        log.debug("Using branch %s", branch)
        return branch

    def _relative_path(self, document: Document) -> str:
        path = Path(document.path).resolve()
        try:
            return path.relative_to(self.workdir.resolve()).as_posix()
        except ValueError:
            return Path(document.path).as_posix()

    def _document_issues(
        self, client: SonarClient, project_id: str, branch: str, document: Document,
    ) -> list[Issue]:
        key = component_key(project_id, self._relative_path(document))
        return fetch_issues(client, project_id, branch, component=key)

    def _run_quick_command(self, client: QuickCommandClient, command: str, content: str) -> str:
        self.host.report_progress("Executing remote command")
        return client.resolve(
            command,
            content,
            on_attempt=lambda n: self.host.report_progress(f"Waiting for result (attempt {n})"),
            cancel=self.cancel,
        )
