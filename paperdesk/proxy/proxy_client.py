import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests

from paperdesk.core.config import Settings
from paperdesk.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    timeout_ms: int = 10_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientConfig":
        return cls(base_url=settings.proxy_base_url, timeout_ms=settings.proxy_timeout_ms)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class ProxyError(Exception):
    """Raised for any failed proxy call: network error, non-2xx, or a body that is not JSON."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.body = body


class ProxyClient:
    """
    HTTP transport for the brokerage proxy.

    The proxy holds the broker credentials, so requests carry no auth of their
    own. The client knows paths and JSON, never entity shapes.
    """

    def __init__(self, config: ClientConfig, session: Optional[Any] = None) -> None:
        self.config = config
        self.session = session or self._init_session()

    def _init_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(DEFAULT_HEADERS)
        return session

    def url_for(self, endpoint: str) -> str:
        return self.config.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self.url_for(endpoint)
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        try:
            response = self.session.request(
                method,
                url,
                params=query or None,
                json=body,
                headers=DEFAULT_HEADERS,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning(
                "proxy_request_failed",
                extra={"event": "proxy_request_failed", "method": method, "endpoint": endpoint, "error": str(exc)},
            )
            raise ProxyError(str(exc) or f"Request to {endpoint} failed") from exc

        status = response.status_code
        if not 200 <= status < 300:
            text = response.text or ""
            reason = response.reason or ""
            message = text or f"API Error: {status} {reason}".rstrip()
            logger.warning(
                "proxy_http_error",
                extra={"event": "proxy_http_error", "method": method, "endpoint": endpoint, "status_code": status},
            )
            raise ProxyError(message, status_code=status, reason=reason, body=text)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning(
                "proxy_invalid_json",
                extra={"event": "proxy_invalid_json", "method": method, "endpoint": endpoint, "status_code": status},
            )
            raise ProxyError(f"Invalid JSON from {endpoint}", status_code=status) from exc

    async def get(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await asyncio.to_thread(self.request, "GET", endpoint, params=params)

    async def post(self, endpoint: str, body: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.request, "POST", endpoint, body=body)
