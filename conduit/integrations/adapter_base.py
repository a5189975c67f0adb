"""
Conduit HTTP Provider Adapter.

Base for provider adapters that speak HTTP. Provides:
- Auth headers (API key, Basic, Bearer, custom)
- Standardized request/response envelope with latency
- Translation of HTTP failures into the provider error taxonomy

Retries and failover are not done here: the adapter raises a typed
ProviderError and leaves recovery to ``with_retry`` / ``FailoverPool``.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
import base64
import time

import httpx

from conduit.integrations.errors import provider_error_from_exception, provider_error_from_response


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BASIC = "basic"
    BEARER = "bearer"
    CUSTOM = "custom"


@dataclass
class AuthCredentials:
    """Credentials resolved for one adapter instance."""
    auth_type: AuthType = AuthType.NONE
    api_key: str | None = None
    api_key_header: str = "Authorization"
    api_key_prefix: str = "Bearer"
    username: str | None = None
    password: str | None = None
    token: str | None = None
    custom_headers: dict[str, str] = field(default_factory=dict)

    def headers(self) -> dict[str, str]:
        if self.auth_type == AuthType.API_KEY and self.api_key:
            value = f"{self.api_key_prefix} {self.api_key}" if self.api_key_prefix else self.api_key
            return {self.api_key_header: value}

        if self.auth_type == AuthType.BASIC and self.username and self.password:
            encoded = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
            return {"Authorization": f"Basic {encoded}"}

        if self.auth_type == AuthType.BEARER and self.token:
            return {"Authorization": f"Bearer {self.token}"}

        if self.auth_type == AuthType.CUSTOM:
            return dict(self.custom_headers)

        return {}


# ---------------------------------------------------------------------------
# Request / Response envelope
# ---------------------------------------------------------------------------

@dataclass
class AdapterRequest:
    """Standardized outbound request."""
    method: str  # GET, POST, PUT, PATCH, DELETE
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    form: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0


@dataclass
class AdapterResponse:
    """Standardized inbound response."""
    status_code: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    latency_ms: float = 0.0
    provider: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


# ---------------------------------------------------------------------------
# HttpProviderAdapter
# ---------------------------------------------------------------------------

class HttpProviderAdapter:
    """
    Base class for HTTP provider adapters.

    Subclasses set:
        provider (str): provider name used in errors and failover logs
        base_url (str): API root URL
    """

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        credentials: Optional[AuthCredentials] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials or AuthCredentials()
        self._client = client

    def get_auth_headers(self) -> dict[str, str]:
        return self.credentials.headers()

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _send(self, client: httpx.AsyncClient, req: AdapterRequest) -> httpx.Response:
        return await client.request(
            method=req.method,
            url=self._url(req.path),
            params=req.params or None,
            json=req.body,
            data=req.form,
            headers={**self.get_auth_headers(), **req.headers},
            timeout=req.timeout,
        )

    async def request(self, req: AdapterRequest) -> AdapterResponse:
        """
        Execute one request. Raises a ProviderError subtype for transport
        failures and 4xx/5xx responses.
        """
        start = time.perf_counter()
        try:
            if self._client is not None:
                resp = await self._send(self._client, req)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await self._send(client, req)
        except httpx.HTTPError as exc:
            raise provider_error_from_exception(self.provider, exc) from exc
        latency = (time.perf_counter() - start) * 1000

        error = provider_error_from_response(self.provider, resp)
        if error is not None:
            raise error

        is_json = resp.headers.get("content-type", "").startswith("application/json")
        return AdapterResponse(
            status_code=resp.status_code,
            data=resp.json() if is_json and resp.content else resp.text,
            headers=dict(resp.headers),
            latency_ms=latency,
            provider=self.provider,
        )
