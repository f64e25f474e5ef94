"""StackSpot AI quick command client.

Usage:
    client = QuickCommandClient(client_id, client_secret, realm="zup")
    fixed  = client.resolve("fix-sonar-issues", annotated_source)

An execution goes through these steps:

    INIT -> TOKEN_ACQUIRED -> SUBMITTED -> POLLING -> COMPLETED | FAILED

The bearer token comes from a client-credentials grant and is cached until it
expires. Submission returns an execution id which is polled every
``POLL_INTERVAL`` seconds, at most ``MAX_ATTEMPTS`` times. Every failure is
raised; nothing is retried except the poll itself while the status is not
COMPLETED.
"""

import logging
import re
import threading
import time
from typing import Any, Callable

import requests

from sonar_fix.errors import (
    AuthError,
    ExecutionCancelledError,
    ExecutionTimeoutError,
    NetworkError,
    ParseError,
    PollError,
    SubmissionError,
)
from sonar_fix.models import JobExecution
from sonar_fix.session import TokenCache

log = logging.getLogger(__name__)

DEFAULT_IDM_URL = "https://idm.stackspot.com"
DEFAULT_API_URL = "https://genai-code-buddy-api.stackspot.com"

DEFAULT_EXPIRES_IN = 3600
POLL_INTERVAL = 10
MAX_ATTEMPTS = 30

_CODE_BLOCK_RE = re.compile(r"```[^\n`]*\n([\s\S]*?)```")


def extract_code_block(text: str) -> str:
    """Return the trimmed body of the first fenced code block in *text*.

    Text without a fenced block is returned unchanged.
    """
    match = _CODE_BLOCK_RE.search(text)
    if match is None:
        return text
    return match.group(1).strip()


class QuickCommandClient:
    """Client-credentials authentication plus submit-and-poll executions."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        realm: str = "zup",
        token_cache: TokenCache | None = None,
        idm_url: str = DEFAULT_IDM_URL,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self.token_url = f"{idm_url.rstrip('/')}/{realm}/oidc/oauth/token"
        self.api_url = api_url.rstrip("/")
        self._token_cache = token_cache if token_cache is not None else TokenCache()
        self._timeout = timeout
        self._sleep = sleep
        self._session = requests.Session()

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    def get_token(self) -> str:
        """Return a bearer token, from the cache while it is still valid."""
        cached = self._token_cache.get()
        if cached:
            return cached

        form = {
            "client_id":     self._client_id,
            "grant_type":    "client_credentials",
            "client_secret": self._client_secret,
        }
        response = self._send("POST", self.token_url, data=form)
        if response.status_code != 200:
            raise AuthError(response.status_code, response.reason or "")

        payload = self._json(response)
        token = payload.get("access_token")
        if not token:
            raise ParseError("Token response has no 'access_token'")
        expires_in = payload.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Token response has an invalid 'expires_in': {expires_in!r}") from exc
        self._token_cache.store(token, lifetime)
        log.debug("Obtained a StackSpot token valid for %ss", expires_in)
        return token

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    def create_execution(
        self,
        command_slug: str,
        content: str,
        conversation_id: str | None = None,
    ) -> str:
        """Start a quick command execution and return its id."""
        url = f"{self.api_url}/v1/quick-commands/create-execution/{command_slug}"
        params = {"conversation_id": conversation_id} if conversation_id else None
        response = self._send(
            "POST", url,
            params=params,
            json={"input_data": content},
            headers=self._auth_headers(),
        )
        if response.status_code != 200:
            raise SubmissionError(
                f"Failed to create execution: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        execution_id = response.text.strip().strip('"').strip()
        if not execution_id:
            raise SubmissionError("Execution created without an id", status_code=200)
        log.info("Quick command execution started with id %s", execution_id)
        return execution_id

    def get_execution(self, execution_id: str) -> JobExecution | None:
        """Return the execution once COMPLETED, ``None`` while it is not."""
        url = f"{self.api_url}/v1/quick-commands/callback/{execution_id}"
        response = self._send("GET", url, headers=self._auth_headers())
        if response.status_code != 200:
            raise PollError(
                f"Failed to get execution {execution_id}: {response.status_code}",
                status_code=response.status_code,
            )
        execution = JobExecution.from_json(execution_id, self._json(response))
        return execution if execution.completed else None

    def poll(
        self,
        execution_id: str,
        interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_ATTEMPTS,
        on_attempt: Callable[[int], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> JobExecution:
        """Poll until the execution completes.

        Waits *interval* seconds between attempts. Raises
        ``ExecutionTimeoutError`` after *max_attempts* incomplete answers and
        ``ExecutionCancelledError`` as soon as *cancel* is set.
        """
        for attempt in range(1, max_attempts + 1):
            if cancel is not None and cancel.is_set():
                raise ExecutionCancelledError(f"Execution {execution_id} cancelled")
            execution = self.get_execution(execution_id)
            log.debug("Execution %s attempt %d: %s", execution_id, attempt,
                      "completed" if execution else "pending")
            if on_attempt is not None:
                on_attempt(attempt)
            if execution is not None:
                return execution
            if attempt < max_attempts:
                self._wait(interval, cancel)
        raise ExecutionTimeoutError(execution_id, max_attempts)

    def resolve(
        self,
        command_slug: str,
        content: str,
        on_attempt: Callable[[int], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        """Submit *content*, wait for the result and return its code block."""
        self.get_token()
        execution_id = self.create_execution(command_slug, content)
        execution = self.poll(execution_id, on_attempt=on_attempt, cancel=cancel)
        if not isinstance(execution.result, str):
            raise ParseError(f"Execution {execution_id} completed without a result")
        return extract_code_block(execution.result)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.get_token()}"}

    def _wait(self, interval: float, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(interval)
        elif cancel.wait(interval):
            raise ExecutionCancelledError("Execution cancelled while waiting")

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(f"Unable to reach '{url}'") from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"Request to '{url}' failed: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"Malformed JSON from {response.url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ParseError(f"Expected a JSON object from {response.url}")
        return payload
