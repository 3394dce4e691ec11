"""REST client for a content platform instance."""

import json
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class PlatformAPIError(Exception):
    """A request to the platform failed with a non-2xx response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status_code,
            "details": self.details,
        }


class PlatformConnectionError(PlatformAPIError):
    """The instance is unreachable or rejected the token."""


class PlatformClient:
    """
    Thin bearer-token client over ``requests``.

    Every response body is unwrapped from its ``{"data": ...}`` envelope.
    Failed requests raise :class:`PlatformAPIError`; transport failures raise
    :class:`PlatformConnectionError`. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the instance
            token: Static access token (a leading ``Bearer`` is stripped)
            timeout: Per-request timeout in seconds
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.token = token[7:].strip() if token.lower().startswith("bearer ") else token
        self.timeout = timeout
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with authentication and no retries."""
        session = requests.Session()

        retries = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.token:
            session.headers["Authorization"] = f"Bearer {self.token}"
        session.headers["Content-Type"] = "application/json"

        return session

    @staticmethod
    def _encode_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Drop empty values and JSON-encode nested query parameters."""
        if not params:
            return None
        encoded = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, (dict, list)):
                encoded[key] = json.dumps(value)
            else:
                encoded[key] = value
        return encoded

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None
    ) -> Any:
        """
        Send a request and return the unwrapped response data.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            params: Query parameters
            json_body: JSON request body

        Returns:
            The ``data`` member of the response, or the whole body when there
            is no envelope, or None for empty responses
        """
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"{method} {url}")

        try:
            response = self._session.request(
                method,
                url,
                params=self._encode_params(params),
                json=json_body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PlatformConnectionError(f"Network error calling {url}: {e}", status_code=0) from e

        if not response.ok:
            details: Any = None
            message = f"HTTP {response.status_code}: {response.reason}"
            try:
                details = response.json()
                errors = details.get("errors") if isinstance(details, dict) else None
                if errors and isinstance(errors, list):
                    message = errors[0].get("message") or message
            except ValueError:
                details = response.text or None
            raise PlatformAPIError(message, status_code=response.status_code, details=details)

        if response.status_code == 204 or not response.content:
            return None

        try:
            body = response.json()
        except ValueError:
            return response.text

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Any] = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("POST", endpoint, params=params, json_body=data)

    def patch(self, endpoint: str, data: Any) -> Any:
        return self.request("PATCH", endpoint, json_body=data)

    def delete(self, endpoint: str) -> Any:
        return self.request("DELETE", endpoint)

    def validate_token(self) -> Dict[str, Any]:
        """
        Check that the instance is reachable and the token has admin access.

        Reading one user requires admin rights, so a success here means the
        token is usable for migration.

        Raises:
            PlatformConnectionError: if the instance cannot be used
        """
        try:
            users = self.get("/users", params={"limit": 1})
        except PlatformConnectionError:
            raise
        except PlatformAPIError as e:
            raise PlatformConnectionError(
                f"Invalid token or insufficient permissions for {self.base_url}: {e.message}",
                status_code=e.status_code,
                details=e.details,
            ) from e

        logger.info(f"Token validated for {self.base_url}")
        return {"url": self.base_url, "user_count": len(users or [])}
