from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

import httpx

from qbo_client.config import OAUTH1, normalize_oauth_version
from qbo_client.errors import ParseError, RemoteFault, TransportError

logger = logging.getLogger(__name__)

APP_CENTER_BASE = "https://appcenter.intuit.com"
V3_ENDPOINT_BASE_URL = "https://sandbox-quickbooks.api.intuit.com/v3/company/"

TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
REVOKE_URL = "https://developer.api.intuit.com/v2/oauth2/tokens/revoke"
AUTHORIZATION_URL = APP_CENTER_BASE + "/connect/oauth2"
SANDBOX_USER_INFO_URL = "https://sandbox-accounts.platform.intuit.com/v1/openid_connect/userinfo"
USER_INFO_URL = "https://accounts.platform.intuit.com/v1/openid_connect/userinfo"

REQUEST_TOKEN_URL = "https://oauth.intuit.com/oauth/v1/get_request_token"
ACCESS_TOKEN_URL = "https://oauth.intuit.com/oauth/v1/get_access_token"
APP_CENTER_URL = APP_CENTER_BASE + "/Connect/Begin?oauth_token="
RECONNECT_URL = APP_CENTER_BASE + "/api/v1/connection/reconnect"
DISCONNECT_URL = APP_CENTER_BASE + "/api/v1/connection/disconnect"

SANDBOX_DISCOVERY_URL = "https://developer.intuit.com/.well-known/openid_sandbox_configuration/"
PRODUCTION_DISCOVERY_URL = "https://developer.api.intuit.com/.well-known/openid_configuration/"


def company_base_url(sandbox: bool) -> str:
    return V3_ENDPOINT_BASE_URL if sandbox else V3_ENDPOINT_BASE_URL.replace("sandbox-", "")


def discovery_url(sandbox: bool) -> str:
    return SANDBOX_DISCOVERY_URL if sandbox else PRODUCTION_DISCOVERY_URL


@dataclass(frozen=True)
class EndpointSet:
    """Every URL one client talks to, resolved once when the client is built."""

    company_base: str
    token_url: str = TOKEN_URL
    revoke_url: str = REVOKE_URL
    authorization_url: Optional[str] = None
    user_info_url: Optional[str] = None
    request_token_url: Optional[str] = None
    access_token_url: Optional[str] = None
    app_center_url: Optional[str] = None
    reconnect_url: Optional[str] = None
    disconnect_url: Optional[str] = None

    def is_out_of_band(self, url: str) -> bool:
        """True for URLs used verbatim instead of under the company base."""
        fixed = (self.revoke_url, self.reconnect_url, self.disconnect_url, self.user_info_url)
        return url in {u for u in fixed if u}

    def with_discovery(self, document: dict) -> "EndpointSet":
        return replace(
            self,
            authorization_url=document.get("authorization_endpoint") or self.authorization_url,
            token_url=document.get("token_endpoint") or self.token_url,
            user_info_url=document.get("userinfo_endpoint") or self.user_info_url,
            revoke_url=document.get("revocation_endpoint") or self.revoke_url,
        )


def default_endpoints(oauth_version: str, sandbox: bool) -> EndpointSet:
    base = company_base_url(sandbox)
    if normalize_oauth_version(oauth_version) == OAUTH1:
        return EndpointSet(
            company_base=base,
            request_token_url=REQUEST_TOKEN_URL,
            access_token_url=ACCESS_TOKEN_URL,
            app_center_url=APP_CENTER_URL,
            reconnect_url=RECONNECT_URL,
            disconnect_url=DISCONNECT_URL,
        )
    return EndpointSet(
        company_base=base,
        authorization_url=AUTHORIZATION_URL,
        user_info_url=SANDBOX_USER_INFO_URL if sandbox else USER_INFO_URL,
    )


async def fetch_discovery_document(http: httpx.AsyncClient, sandbox: bool) -> dict:
    url = discovery_url(sandbox)
    try:
        r = await http.get(url, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        raise TransportError(f"OpenID discovery request failed: {e}", original_exception=e) from e

    if r.status_code >= 300:
        raise RemoteFault(
            f"OpenID discovery failed: {r.status_code}",
            status_code=r.status_code,
            detail=r.text,
        )
    try:
        document = r.json()
    except ValueError as e:
        raise ParseError("OpenID discovery document is not JSON", detail=r.text, original_exception=e) from e
    if not isinstance(document, dict):
        raise ParseError("OpenID discovery document is not an object", detail=document)
    return document


async def discover_endpoints(http: httpx.AsyncClient, sandbox: bool, base: Optional[EndpointSet] = None) -> EndpointSet:
    """Resolve the OAuth 2.0 endpoints from Intuit's discovery document."""
    base = base or default_endpoints("2.0", sandbox)
    document = await fetch_discovery_document(http, sandbox)
    logger.debug("Resolved OAuth endpoints from %s", discovery_url(sandbox))
    return base.with_discovery(document)
