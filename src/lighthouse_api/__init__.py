from .auth import LighthouseAuth, scope_client, scope_session
from .env import ClientConfig, load_config_from_env
from .errors import (
    ConfigurationError,
    LighthouseError,
    RequestCancelledError,
    UnexpectedResponseError,
    Unprocessable,
    Unprocessables,
    check_response,
)
from .limiter import AsyncTokenBucket, TokenBucket
from .service import Plan, aget_plan, base_url, get_plan, paginate, parse_id
from .transport import AsyncTransport, Transport
from .types import DEFAULT_RATE_LIMIT, Credentials, RateLimitConfig, RetryConfig

__all__ = [
    "Credentials",
    "RateLimitConfig",
    "RetryConfig",
    "DEFAULT_RATE_LIMIT",
    "Transport",
    "AsyncTransport",
    "LighthouseAuth",
    "scope_session",
    "scope_client",
    "TokenBucket",
    "AsyncTokenBucket",
    "ClientConfig",
    "load_config_from_env",
    "LighthouseError",
    "ConfigurationError",
    "RequestCancelledError",
    "UnexpectedResponseError",
    "Unprocessable",
    "Unprocessables",
    "check_response",
    "Plan",
    "base_url",
    "get_plan",
    "aget_plan",
    "paginate",
    "parse_id",
]
