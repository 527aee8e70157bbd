"""
Slide REST API client.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from slide_mcp.api.errors import SlideAPIError, SlideConnectionError, SlideError

logger = logging.getLogger("Slide.api.client")

DEFAULT_BASE_URL = "https://api.slide.tech"
DEFAULT_TIMEOUT = 30.0


def _normalize_base_url(base_url: str) -> str:
    value = base_url.rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid Slide base URL: {base_url!r}")
    return value


def _encode_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Render query values the way the API expects (lowercase booleans, no None)."""
    if not params:
        return None
    encoded: Dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, float) and value.is_integer():
            encoded[key] = str(int(value))
        else:
            encoded[key] = str(value)
    return encoded or None


class SlideClient:
    """
    Synchronous client for the Slide REST API.

    Every call carries ``Authorization: Bearer <key>`` and a fixed timeout.
    Non-2xx statuses raise ``SlideAPIError`` with the upstream body untouched;
    transport failures raise ``SlideConnectionError``. There are no retries.

    Usage:
        client = SlideClient(api_key="tok")
        devices = client.get("/v1/device", params={"limit": 10})
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = _normalize_base_url(base_url)
        self.timeout = timeout
        self._api_key = api_key
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "SlideClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Execute one REST call and return the decoded JSON (None for an empty body)."""
        url = self._url(path)
        logger.debug("%s %s params=%s", method, path, params)
        try:
            response = self._session.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=json_body,
                params=_encode_params(params),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise SlideConnectionError(f"request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SlideAPIError(
                response.status_code,
                response.text,
                path=path,
                payload=response.text,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise SlideError(f"failed to parse response: {exc}") from exc

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: Optional[Any] = None) -> Any:
        return self.request("POST", path, json_body=body)

    def patch(self, path: str, body: Optional[Any] = None) -> Any:
        return self.request("PATCH", path, json_body=body)

    def delete(self, path: str, body: Optional[Any] = None) -> Any:
        return self.request("DELETE", path, json_body=body)

    def fetch_text(self, url: str, *, timeout: Optional[float] = None) -> requests.Response:
        """
        GET an absolute URL outside the Slide API (templates, docs pages).

        No credentials are attached. The caller inspects the status code.
        """
        try:
            return self._session.request(
                method="GET",
                url=url,
                headers={"User-Agent": "slide-mcp-server"},
                json=None,
                params=None,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as exc:
            raise SlideConnectionError(f"request failed: {exc}") from exc
