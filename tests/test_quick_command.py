"""Tests for sonar_fix/quick_command.py"""

import threading

import pytest
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
from sonar_fix.quick_command import QuickCommandClient, extract_code_block
from sonar_fix.session import TokenCache

TOKEN_URL = "https://idm.stackspot.com/zup/oidc/oauth/token"
API       = "https://genai-code-buddy-api.stackspot.com"
CREATE    = f"{API}/v1/quick-commands/create-execution/fix-sonar"
CALLBACK  = f"{API}/v1/quick-commands/callback/exec-1"

PENDING   = {"json": {"progress": {"status": "RUNNING"}, "result": None}}
COMPLETED = {"json": {"progress": {"status": "COMPLETED"},
                      "result": "Here:\n```js\nconst x = 1;\n```"}}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class RecordingSleep:
    def __init__(self, clock=None):
        self.calls = []
        self.clock = clock

    def __call__(self, seconds):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds


def _client(sleep=None, clock=None, realm="zup") -> QuickCommandClient:
    return QuickCommandClient(
        "cid", "secret", realm=realm,
        token_cache=TokenCache(clock=clock or FakeClock()),
        sleep=sleep or RecordingSleep(),
    )


@pytest.fixture
def token(requests_mock):
    return requests_mock.post(TOKEN_URL, json={"access_token": "bearer-1", "expires_in": 600})


# ---------------------------------------------------------------------------
# extract_code_block
# ---------------------------------------------------------------------------

def test_extract_code_block_with_language_tag():
    assert extract_code_block("Here:\n```js\nconst x=1;\n```") == "const x=1;"


def test_extract_code_block_without_fence_returns_input():
    assert extract_code_block("no fences here") == "no fences here"


def test_extract_code_block_without_language_tag():
    assert extract_code_block("```\n  a\n  b\n```\ntrailing") == "a\n  b"


def test_extract_code_block_takes_first_block():
    text = "```py\nfirst\n```\n```py\nsecond\n```"
    assert extract_code_block(text) == "first"


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

def test_token_request_is_form_encoded(token):
    _client().get_token()
    body = token.last_request.text
    assert "client_id=cid" in body
    assert "grant_type=client_credentials" in body
    assert "client_secret=secret" in body
    assert token.last_request.headers["Content-Type"] == "application/x-www-form-urlencoded"


def test_token_url_uses_realm(requests_mock):
    adapter = requests_mock.post(
        "https://idm.stackspot.com/acme/oidc/oauth/token", json={"access_token": "t"}
    )
    assert _client(realm="acme").get_token() == "t"
    assert adapter.called


def test_token_cached_within_expiry_window(token):
    clock = FakeClock()
    client = _client(clock=clock)
    assert client.get_token() == "bearer-1"
    clock.now += 599
    assert client.get_token() == "bearer-1"
    assert token.call_count == 1


def test_token_refetched_after_expiry(token):
    clock = FakeClock()
    client = _client(clock=clock)
    client.get_token()
    clock.now += 600
    client.get_token()
    assert token.call_count == 2


def test_token_default_expiry_is_one_hour(requests_mock):
    adapter = requests_mock.post(TOKEN_URL, json={"access_token": "t"})
    clock = FakeClock()
    client = _client(clock=clock)
    client.get_token()
    clock.now += 3599
    client.get_token()
    assert adapter.call_count == 1
    clock.now += 1
    client.get_token()
    assert adapter.call_count == 2


def test_token_with_zero_expiry_is_not_reused(requests_mock):
    adapter = requests_mock.post(TOKEN_URL, json={"access_token": "t", "expires_in": 0})
    clock = FakeClock()
    client = _client(clock=clock)
    client.get_token()
    clock.now += 1
    client.get_token()
    assert adapter.call_count == 2


def test_token_with_non_numeric_expiry_raises_parse_error(requests_mock):
    requests_mock.post(TOKEN_URL, json={"access_token": "t", "expires_in": "soon"})
    with pytest.raises(ParseError, match="expires_in"):
        _client().get_token()


def test_token_transport_error_raises_network_error(requests_mock):
    requests_mock.post(TOKEN_URL, exc=requests.exceptions.ChunkedEncodingError)
    with pytest.raises(NetworkError):
        _client().get_token()


def test_token_cache_shared_between_clients(token):
    cache = TokenCache(clock=FakeClock())
    QuickCommandClient("cid", "secret", token_cache=cache).get_token()
    QuickCommandClient("cid", "secret", token_cache=cache).get_token()
    assert token.call_count == 1


def test_token_non_200_raises_auth_error(requests_mock):
    requests_mock.post(TOKEN_URL, status_code=401, reason="Unauthorized")
    with pytest.raises(AuthError, match="401 Unauthorized") as excinfo:
        _client().get_token()
    assert excinfo.value.status_code == 401


def test_token_without_access_token_raises_parse_error(requests_mock):
    requests_mock.post(TOKEN_URL, json={"token_type": "bearer"})
    with pytest.raises(ParseError):
        _client().get_token()


def test_token_connection_error_raises_network_error(requests_mock):
    requests_mock.post(TOKEN_URL, exc=requests.exceptions.ConnectionError)
    with pytest.raises(NetworkError):
        _client().get_token()


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def test_create_execution_strips_quotes(token, requests_mock):
    adapter = requests_mock.post(CREATE, text='"exec-1"\n')
    assert _client().create_execution("fix-sonar", "code") == "exec-1"
    assert adapter.last_request.json() == {"input_data": "code"}
    assert adapter.last_request.headers["Authorization"] == "Bearer bearer-1"


def test_create_execution_with_conversation_id(token, requests_mock):
    adapter = requests_mock.post(CREATE, text='"exec-1"')
    _client().create_execution("fix-sonar", "code", conversation_id="conv-9")
    assert adapter.last_request.qs == {"conversation_id": ["conv-9"]}


def test_create_execution_non_200_raises_submission_error(token, requests_mock):
    requests_mock.post(CREATE, status_code=422, text="bad slug")
    with pytest.raises(SubmissionError) as excinfo:
        _client().create_execution("fix-sonar", "code")
    assert excinfo.value.status_code == 422


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

def test_poll_completes_on_thirtieth_attempt(token, requests_mock):
    clock = FakeClock()
    sleep = RecordingSleep(clock)
    adapter = requests_mock.get(CALLBACK, [PENDING] * 29 + [COMPLETED])
    attempts = []
    execution = _client(sleep=sleep, clock=clock).poll("exec-1", on_attempt=attempts.append)
    assert execution.completed
    assert adapter.call_count == 30
    assert sleep.calls == [10] * 29
    assert clock.now == 1000.0 + 290
    assert attempts == list(range(1, 31))


def test_poll_times_out_after_thirty_attempts(token, requests_mock):
    adapter = requests_mock.get(CALLBACK, **PENDING)
    with pytest.raises(ExecutionTimeoutError) as excinfo:
        _client().poll("exec-1")
    assert adapter.call_count == 30
    assert excinfo.value.attempts == 30


def test_poll_returns_immediately_when_completed(token, requests_mock):
    sleep = RecordingSleep()
    requests_mock.get(CALLBACK, **COMPLETED)
    _client(sleep=sleep).poll("exec-1")
    assert sleep.calls == []


def test_poll_non_200_is_fatal(token, requests_mock):
    adapter = requests_mock.get(CALLBACK, [PENDING, {"status_code": 500}, COMPLETED])
    with pytest.raises(PollError) as excinfo:
        _client().poll("exec-1")
    assert adapter.call_count == 2
    assert excinfo.value.status_code == 500


def test_poll_failed_status_is_not_terminal(token, requests_mock):
    failed = {"json": {"progress": {"status": "FAILURE"}, "result": None}}
    adapter = requests_mock.get(CALLBACK, [failed, COMPLETED])
    assert _client().poll("exec-1").completed
    assert adapter.call_count == 2


def test_poll_cancel_before_first_attempt(token, requests_mock):
    adapter = requests_mock.get(CALLBACK, **PENDING)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ExecutionCancelledError):
        _client().poll("exec-1", cancel=cancel)
    assert adapter.call_count == 0


def test_poll_cancel_between_attempts_keeps_token_cache(token, requests_mock):
    adapter = requests_mock.get(CALLBACK, **PENDING)
    cancel = threading.Event()
    client = _client()

    def on_attempt(n):
        if n == 2:
            cancel.set()

    with pytest.raises(ExecutionCancelledError):
        client.poll("exec-1", interval=0, on_attempt=on_attempt, cancel=cancel)
    assert adapter.call_count == 2
    client.get_token()
    assert token.call_count == 1


# ---------------------------------------------------------------------------
# resolve()
# ---------------------------------------------------------------------------

def test_resolve_full_flow(token, requests_mock):
    requests_mock.post(CREATE, text='"exec-1"')
    requests_mock.get(CALLBACK, [PENDING, COMPLETED])
    assert _client().resolve("fix-sonar", "annotated") == "const x = 1;"
    assert token.call_count == 1


def test_resolve_completed_without_result_raises(token, requests_mock):
    requests_mock.post(CREATE, text='"exec-1"')
    requests_mock.get(CALLBACK, json={"progress": {"status": "COMPLETED"}})
    with pytest.raises(ParseError):
        _client().resolve("fix-sonar", "annotated")
