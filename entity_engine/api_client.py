"""
HTTP client for the console backend.

Every call returns an ApiResponse instead of raising, so callers decide how
a failure degrades (fallback table, empty option list, toast).
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .error_handler import ApiError, GENERIC_ERROR_MESSAGE

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_PREFIX = "/api/v3"
AUTH_FAILED_MESSAGE = "Authentication failed. Please login again."
NETWORK_ERROR_MESSAGE = "Network error"
BACKEND_UNAVAILABLE_MESSAGE = "Backend unavailable"

TokenProvider = Callable[[], Optional[str]]


@dataclass
class ApiResponse:
    """Outcome of one backend call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def error_message(self) -> str:
        return self.error or self.message or GENERIC_ERROR_MESSAGE

    def raise_for_error(self) -> None:
        """Raise ApiError when the call failed."""
        if not self.success:
            raise ApiError(self.error_message, self.status_code)


def unwrap_list(data: Any) -> List[Any]:
    """Accept a bare list, ``{data: [...]}`` or ``{content: [...]}``; anything else is empty."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("data", "content"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


def unwrap_record(data: Any) -> Optional[Dict[str, Any]]:
    """Accept a bare object or ``{data: {...}}``."""
    if isinstance(data, dict):
        inner = data.get("data")
        if isinstance(inner, dict):
            return inner
        return data
    return None


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:
    """Thin wrapper around httpx.Client bound to the console API prefix."""

    def __init__(
        self,
        base_url: str,
        prefix: str = DEFAULT_PREFIX,
        timeout: float = DEFAULT_TIMEOUT,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = f"{base_url.rstrip('/')}/{prefix.strip('/')}" if prefix.strip('/') else base_url.rstrip('/')
        self._token_provider = token_provider
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport
        )

    def _headers(self) -> Dict[str, str]:
        headers = {}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None
    ) -> ApiResponse:
        """
        Issue a request and normalise the outcome.

        Args:
            method: HTTP method
            path: Path below the API prefix, e.g. ``/dealers``
            params: Optional query parameters
            json_body: Optional JSON body

        Returns:
            ApiResponse; never raises for network, status or decode failures
        """
        try:
            response = self._client.request(
                method,
                path,
                params=params,
                json=json_body,
                headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            return ApiResponse(success=False, error=str(e) or NETWORK_ERROR_MESSAGE)

        status = response.status_code
        body = _parse_body(response)

        if status in (401, 403):
            logger.warning(f"{method} {path} rejected with {status}")
            return ApiResponse(success=False, error=AUTH_FAILED_MESSAGE, status_code=status)

        if not response.is_success:
            error = None
            if isinstance(body, dict):
                error = body.get("message") or body.get("error")
            logger.warning(f"{method} {path} returned {status}")
            return ApiResponse(success=False, error=error or f"Request failed ({status})", status_code=status)

        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                return ApiResponse(
                    success=False,
                    error=body.get("error") or body.get("message") or GENERIC_ERROR_MESSAGE,
                    status_code=status
                )
            return ApiResponse(
                success=True,
                data=body.get("data"),
                message=body.get("message"),
                status_code=status
            )

        return ApiResponse(success=True, data=body, status_code=status)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return self.request("GET", path, params=params)

    def post(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("POST", path, json_body=json_body)

    def put(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("PUT", path, json_body=json_body)

    def patch(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("PATCH", path, json_body=json_body)

    def delete(self, path: str) -> ApiResponse:
        return self.request("DELETE", path)

    def close(self) -> None:
        self._client.close()


def env_token_provider(env_var: str) -> TokenProvider:
    """Token provider reading a bearer token from the environment."""
    def _provider() -> Optional[str]:
        return os.environ.get(env_var) or None
    return _provider


def build_api_client(
    config: Dict[str, Any],
    token_provider: Optional[TokenProvider] = None,
    transport: Optional[httpx.BaseTransport] = None
) -> ApiClient:
    """
    Build an ApiClient from the ``api`` configuration section.

    Args:
        config: Full application configuration
        token_provider: Overrides the environment-based token lookup
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """
    api_config = config.get("api", {})
    if token_provider is None and api_config.get("token_env"):
        token_provider = env_token_provider(api_config["token_env"])

    return ApiClient(
        base_url=api_config.get("base_url", "http://localhost:8080"),
        prefix=api_config.get("prefix", DEFAULT_PREFIX),
        timeout=float(api_config.get("timeout", DEFAULT_TIMEOUT)),
        token_provider=token_provider,
        transport=transport
    )
