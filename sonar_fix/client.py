"""SonarCloud API client.

Usage:
    client = SonarClient(url="https://sonarcloud.io", token="xxx")
    data   = client.get("/api/issues/search", {"componentKeys": "my-project"})
    text   = client.get_text("/api/sources/raw", {"key": "my-project:src/a.ts"})
"""

from typing import Any

import requests

from sonar_fix.errors import AuthenticationError, NetworkError, NotFoundError, ParseError

DEFAULT_URL = "https://sonarcloud.io"


class SonarClient:
    """Thin wrapper around the SonarCloud REST API using bearer auth."""

    def __init__(self, url: str = DEFAULT_URL, token: str = "", timeout: int = 30) -> None:
        self.base_url = url.rstrip("/")
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers["Authorization"] = f"Bearer {token}"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict:
        """Perform a GET request and return the parsed JSON object.

        Raises:
            AuthenticationError: HTTP 401
            NotFoundError:       HTTP 404
            NetworkError:        Any other non-2xx response, timeout or connection failure
            ParseError:          Body is not a JSON object
        """
        response = self._request(endpoint, params or {})
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(f"Malformed JSON from {response.url}: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError(f"Expected a JSON object from {response.url}")
        return data

    def get_text(self, endpoint: str, params: dict[str, Any] | None = None) -> str:
        """Perform a GET request and return the raw body text."""
        return self._request(endpoint, params or {}).text

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _request(self, endpoint: str, params: dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(
                f"Unable to reach SonarCloud at '{self.base_url}'"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"Request to '{url}' failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthenticationError(
                "Authentication failed: check that your token is valid and not expired.",
                status_code=401,
            )
        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {url}", status_code=404)
        if response.status_code != 200:
            raise NetworkError(
                f"Unexpected response {response.status_code} from {url}: {response.text[:200]}",
                status_code=response.status_code,
            )

        return response
