"""HTTP plumbing shared by the network adapters."""

import logging
from typing import Any, Dict, Optional

import requests

from ..errors import (
    CredentialRejectedError,
    MalformedResponseError,
    ProviderError,
    ProviderNetworkError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ProviderClient:
    """
    Thin JSON client over a requests session.

    Translates transport failures and HTTP statuses into the engine's
    error taxonomy:
    - 401/403 -> CredentialRejectedError
    - 429 -> RateLimitedError (retryable)
    - 5xx, timeouts, connection errors -> ProviderNetworkError (retryable)
    - other 4xx -> ProviderError
    - undecodable body -> MalformedResponseError
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        session: requests.Session,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: float = 10.0
    ):
        """
        Initialize the client.

        Args:
            provider: Provider name used in error messages
            base_url: Base URL for API requests
            session: requests session to send requests with
            headers: Headers added to every request (e.g. Authorization)
            params: Query parameters added to every request
            timeout: Per-request timeout in seconds
        """
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.headers = headers or {}
        self.params = params or {}
        self.timeout = timeout

    def request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {"Accept": "application/json", **self.headers, **kwargs.pop("headers", {})}
        params = {**self.params, **(kwargs.pop("params", None) or {})}

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params or None,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            raise ProviderNetworkError(f"{self.provider} request timed out") from e
        except requests.exceptions.RequestException as e:
            raise ProviderNetworkError(f"{self.provider} request failed: {e.__class__.__name__}") from e

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.provider} returned a body that is not valid JSON",
                status_code=response.status_code,
            ) from e

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None, path: str = "") -> Dict[str, Any]:
        """Run a GraphQL query and return its `data` object."""
        body = self.post(path, json={"query": query, "variables": variables or {}})
        if not isinstance(body, dict):
            raise MalformedResponseError(f"{self.provider} GraphQL response is not an object")

        errors = body.get("errors")
        if errors:
            message = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            lowered = message.lower()
            if "authenticat" in lowered or "not authorized" in lowered or "unauthorized" in lowered:
                raise CredentialRejectedError(f"{self.provider} rejected the credential")
            if "complexity" in lowered or "rate limit" in lowered:
                raise RateLimitedError(f"{self.provider} rate limit: {message}")
            raise MalformedResponseError(f"{self.provider} GraphQL error: {message}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.provider} GraphQL response has no data")
        return data

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        if status in (401, 403):
            raise CredentialRejectedError(
                f"{self.provider} rejected the credential (HTTP {status})",
                status_code=status,
            )
        if status == 429:
            raise RateLimitedError(
                f"{self.provider} rate limit exceeded (HTTP 429)",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            raise ProviderNetworkError(f"{self.provider} server error (HTTP {status})", status_code=status)

        raise ProviderError(f"{self.provider} request failed (HTTP {status})", status_code=status)
