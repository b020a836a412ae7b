"""fortytwo - async client for the 42 intranet REST API.

Provides an authenticated request pipeline through:
- OAuth2 bearer token lifecycle (client credentials, authorization code)
- A shared rate limiter gating every outbound call
- A bounded retry state machine for 401/429 responses
- Link header pagination with concurrent page fan-out

Python Version: 3.10+ required
"""

# Logging Configuration - configure before other imports
from .logging_config import StructuredFormatter, configure_logging

configure_logging()

from .auth import Credential, TokenManager
from .client import FortyTwoClient
from .config import FortyTwoConfig, get_config, reset_config
from .errors import (
    ApiError,
    FortyTwoError,
    RetryExhaustedError,
    TokenAcquisitionError,
    TransportError,
)
from .executor import RequestDescriptor, RequestExecutor, ResponseEnvelope
from .pagination import Paginator, last_page_number, parse_link_header
from .rate_limiter import RateLimiter

from .__version__ import __version__

__all__ = [
    "ApiError",
    "Credential",
    "FortyTwoClient",
    "FortyTwoConfig",
    "FortyTwoError",
    "Paginator",
    "RateLimiter",
    "RequestDescriptor",
    "RequestExecutor",
    "ResponseEnvelope",
    "RetryExhaustedError",
    "StructuredFormatter",
    "TokenAcquisitionError",
    "TokenManager",
    "TransportError",
    "configure_logging",
    "get_config",
    "last_page_number",
    "parse_link_header",
    "reset_config",
]
