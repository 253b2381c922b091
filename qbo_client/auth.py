from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional, Union

import httpx
from oauthlib.oauth1 import Client as OAuth1Client

from qbo_client.config import ClientConfiguration
from qbo_client.endpoints import EndpointSet
from qbo_client.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuth1Params:
    consumer_key: str
    consumer_secret: str
    token: Optional[str]
    token_secret: Optional[str]


class OAuth1Auth(httpx.Auth):
    """Sign each outgoing request with an OAuth 1.0a ``Authorization`` header.

    Only the URL (query included) is signed; JSON and multipart bodies are not
    part of the OAuth 1.0a base string.
    """

    def __init__(self, params: OAuth1Params):
        self.params = params

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        client = OAuth1Client(
            self.params.consumer_key,
            client_secret=self.params.consumer_secret,
            resource_owner_key=self.params.token,
            resource_owner_secret=self.params.token_secret,
        )
        _, headers, _ = client.sign(str(request.url), http_method=request.method)
        request.headers["Authorization"] = headers["Authorization"]
        yield request


def basic_auth_header(consumer_key: str, consumer_secret: str) -> str:
    token = base64.b64encode(f"{consumer_key}:{consumer_secret}".encode()).decode()
    return f"Basic {token}"


class AuthProvider:
    """Per-request authentication material plus the OAuth 2.0 token lifecycle."""

    def __init__(self, config: ClientConfiguration, endpoints: EndpointSet, http: httpx.AsyncClient):
        self.config = config
        self.endpoints = endpoints
        self._http = http
        self._token_lock = asyncio.Lock()

    def signing_material(self) -> Union[OAuth1Params, str]:
        if self.config.is_oauth2:
            return f"Bearer {self.config.access_token}"
        return OAuth1Params(
            consumer_key=self.config.consumer_key,
            consumer_secret=self.config.consumer_secret,
            token=self.config.access_token,
            token_secret=self.config.token_secret,
        )

    def authenticate(self, headers: Dict[str, str]) -> Optional[httpx.Auth]:
        """Add the bearer header, or return the auth flow that signs the request."""
        material = self.signing_material()
        if isinstance(material, str):
            headers["Authorization"] = material
            return None
        return OAuth1Auth(material)

    def _token_headers(self) -> Dict[str, str]:
        return {
            "Authorization": basic_auth_header(self.config.consumer_key, self.config.consumer_secret),
            "Accept": "application/json",
        }

    async def refresh_access_token(self) -> Dict[str, Any]:
        """Exchange the refresh token for a new access/refresh token pair."""
        async with self._token_lock:
            try:
                resp = await self._http.post(
                    self.endpoints.token_url,
                    headers=self._token_headers(),
                    data={"grant_type": "refresh_token", "refresh_token": self.config.refresh_token or ""},
                )
            except httpx.HTTPError as e:
                raise AuthError(f"Token refresh request failed: {e}", original_exception=e) from e

            if resp.status_code != 200:
                try:
                    detail = resp.json()
                except ValueError:
                    detail = resp.text
                raise AuthError(
                    f"Token refresh failed: {resp.status_code} {detail}",
                    status_code=resp.status_code,
                    detail=detail,
                )

            try:
                body = resp.json()
            except ValueError as e:
                raise AuthError("Token refresh response is not JSON", detail=resp.text, original_exception=e) from e
            if not isinstance(body, dict) or not body.get("access_token"):
                raise AuthError("Token refresh response has no access_token", detail=body)

            self.config.access_token = body["access_token"]
            self.config.refresh_token = body.get("refresh_token", self.config.refresh_token)
            logger.info("Refreshed QBO access token for realm %s", self.config.realm_id)
            return body

    async def revoke_access(self, use_refresh_token: bool = False) -> Any:
        """Revoke the refresh (or access) token and tear the session down."""
        async with self._token_lock:
            token = self.config.refresh_token if use_refresh_token else self.config.access_token
            try:
                resp = await self._http.post(
                    self.endpoints.revoke_url,
                    headers=self._token_headers(),
                    data={"token": token or ""},
                )
            except httpx.HTTPError as e:
                raise AuthError(f"Token revoke request failed: {e}", original_exception=e) from e

            try:
                body = resp.json() if resp.content else None
            except ValueError:
                body = resp.text

            if resp.status_code != 200:
                raise AuthError(
                    f"Token revoke failed: {resp.status_code}",
                    status_code=resp.status_code,
                    detail=body,
                )

            self.config.access_token = None
            self.config.refresh_token = None
            self.config.realm_id = None
            logger.info("Revoked QBO access")
            return body
