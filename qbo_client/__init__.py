__version__ = "1.0.0"

from qbo_client.config import OAUTH1, OAUTH2, ClientConfiguration
from qbo_client.errors import (
    AuthError,
    ConfigurationError,
    ParseError,
    QBOError,
    RateLimitError,
    RemoteFault,
    TransportError,
    ValidationError,
)
from qbo_client.client import EntityResource, QuickBooks
from qbo_client.request_context import RequestIdFilter

__all__ = [
    "__version__",
    "OAUTH1",
    "OAUTH2",
    "ClientConfiguration",
    "QuickBooks",
    "EntityResource",
    "RequestIdFilter",
    "QBOError",
    "ConfigurationError",
    "TransportError",
    "AuthError",
    "ValidationError",
    "RemoteFault",
    "RateLimitError",
    "ParseError",
]
