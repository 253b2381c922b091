from __future__ import annotations

from typing import Any, Dict, List, Optional


class QBOError(Exception):
    """Base exception for QuickBooks Online client errors."""

    def __init__(self, message: str, *, detail: Any = None, original_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.detail = detail
        self.original_exception = original_exception


class ConfigurationError(QBOError):
    pass


class TransportError(QBOError):
    """The request never produced an HTTP response (connect, read, timeout)."""


class AuthError(QBOError):
    """Token refresh/revoke failed or the service rejected the credentials."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ValidationError(QBOError):
    pass


class ParseError(QBOError):
    pass


class RemoteFault(QBOError):
    """QBO answered with HTTP >= 300 or a ``Fault`` envelope.

    ``detail`` is the raw response body (parsed JSON when possible) and
    ``errors`` the ``Fault.Error`` list, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        intuit_tid: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.errors = errors or []
        self.intuit_tid = intuit_tid

    @property
    def code(self) -> Optional[str]:
        if not self.errors:
            return None
        return self.errors[0].get("code")


class RateLimitError(RemoteFault):
    pass
