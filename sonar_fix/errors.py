"""Exception taxonomy shared by the SonarCloud and StackSpot clients.

All errors derive from ``SonarFixError`` so the CLI can report any failure of
a pipeline step without touching the editor content.
"""


class SonarFixError(Exception):
    """Base exception for all sonar-fix errors."""


# ---------------------------------------------------------------------------
# Transport / payload
# ---------------------------------------------------------------------------

class NetworkError(SonarFixError):
    """Raised on transport failure or an unexpected HTTP status.

    ``status_code`` is ``None`` when no response was received at all.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(NetworkError):
    """Raised on HTTP 401 from SonarCloud: invalid or expired token."""


class NotFoundError(NetworkError):
    """Raised on HTTP 404 from SonarCloud: project, branch or file not found."""


class ParseError(SonarFixError):
    """Raised when a response body is not the JSON we expect."""


# ---------------------------------------------------------------------------
# StackSpot quick commands
# ---------------------------------------------------------------------------

class AuthError(SonarFixError):
    """Raised when the client-credentials token endpoint rejects the request."""

    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"Failed to get token: {status_code} {reason}".rstrip())
        self.status_code = status_code
        self.reason = reason


class SubmissionError(SonarFixError):
    """Raised when the quick command execution could not be created."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PollError(SonarFixError):
    """Raised when a callback request returns a non-200 status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExecutionTimeoutError(SonarFixError):
    """Raised when the attempt budget is exhausted without a COMPLETED status."""

    def __init__(self, execution_id: str, attempts: int) -> None:
        super().__init__(
            f"Execution {execution_id} did not complete after {attempts} attempts"
        )
        self.execution_id = execution_id
        self.attempts = attempts


class ExecutionCancelledError(SonarFixError):
    """Raised when the caller cancels the poll loop."""


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

class WorkspaceError(SonarFixError):
    """Raised when a file named by SonarCloud cannot be found or written locally."""
