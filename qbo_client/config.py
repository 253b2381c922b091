from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Union

from dotenv import load_dotenv

from qbo_client.errors import ConfigurationError

OAUTH1 = "1.0a"
OAUTH2 = "2.0"
DEFAULT_MINOR_VERSION = "4"

_SANDBOX_ENVS = ("sandbox", "development", "dev", "test")
_TRUTHY = ("1", "true", "yes", "on")


def normalize_oauth_version(version: Union[str, int, float, None]) -> str:
    """Map ``1``, ``1.0``, ``"1.0"`` and friends onto ``"1.0a"`` / ``"2.0"``."""
    if version is None:
        return OAUTH1
    if isinstance(version, (int, float)) and not isinstance(version, bool):
        version = f"{float(version):.1f}"
    v = str(version).strip().lower()
    if v in ("1.0a", "1.0", "1"):
        return OAUTH1
    if v in ("2.0", "2"):
        return OAUTH2
    raise ConfigurationError(f"Unsupported oauth version: {version!r}")


@dataclass
class ClientConfiguration:
    """Credentials and settings for one company (realm) session.

    ``access_token``, ``refresh_token`` and ``realm_id`` are mutated in place
    by token refresh/revoke. Everything else is fixed for the session.
    """

    consumer_key: str
    consumer_secret: str
    access_token: Optional[str]
    realm_id: Optional[str]
    token_secret: Optional[str] = None
    sandbox: bool = False
    debug: bool = False
    minor_version: str = DEFAULT_MINOR_VERSION
    oauth_version: str = OAUTH1
    refresh_token: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 1.0

    def __post_init__(self) -> None:
        self.oauth_version = normalize_oauth_version(self.oauth_version)
        self.minor_version = str(self.minor_version or DEFAULT_MINOR_VERSION)
        if self.oauth_version == OAUTH1 and self.token_secret is None:
            raise ConfigurationError("token_secret is required for OAuth 1.0a")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")

    @property
    def is_oauth2(self) -> bool:
        return self.oauth_version == OAUTH2

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfiguration":
        """Build a configuration from the environment (and a ``.env`` file)."""
        load_dotenv()
        env = (os.environ.get("QBO_ENV") or os.environ.get("INTUIT_ENVIRONMENT") or "production").lower()
        values: dict = {
            "consumer_key": os.environ.get("INTUIT_CLIENT_ID", ""),
            "consumer_secret": os.environ.get("INTUIT_CLIENT_SECRET", ""),
            "access_token": os.environ.get("QBO_ACCESS_TOKEN"),
            "token_secret": os.environ.get("QBO_TOKEN_SECRET"),
            "refresh_token": os.environ.get("QBO_REFRESH_TOKEN"),
            "realm_id": os.environ.get("QBO_REALM_ID"),
            "sandbox": env in _SANDBOX_ENVS,
            "debug": os.environ.get("QBO_DEBUG", "0").lower() in _TRUTHY,
            "minor_version": os.environ.get("QBO_MINORVERSION", DEFAULT_MINOR_VERSION),
            "oauth_version": os.environ.get("QBO_OAUTH_VERSION", OAUTH2),
            "timeout": float(os.environ.get("QBO_TIMEOUT", "30")),
            "max_retries": int(os.environ.get("QBO_MAX_RETRIES", "3")),
            "retry_backoff": float(os.environ.get("QBO_RETRY_BACKOFF", "1.0")),
        }
        values.update(overrides)
        return cls(**values)
