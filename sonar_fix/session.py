"""Per-session state threaded through the pipeline.

A ``Session`` replaces process-wide globals: it carries the StackSpot bearer
token cache and the branch used by the previous command.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from sonar_fix.vcs import DEFAULT_BRANCH


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """Bearer token valid until ``clock() >= expires_at``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._token: CachedToken | None = None

    def get(self) -> str | None:
        with self._lock:
            if self._token is None:
                return None
            if self._clock() >= self._token.expires_at:
                self._token = None
                return None
            return self._token.value

    def store(self, value: str, expires_in: float) -> None:
        with self._lock:
            self._token = CachedToken(value, self._clock() + expires_in)

    def clear(self) -> None:
        with self._lock:
            self._token = None


@dataclass
class Session:
    last_used_branch: str = DEFAULT_BRANCH
    token_cache: TokenCache = field(default_factory=TokenCache)
