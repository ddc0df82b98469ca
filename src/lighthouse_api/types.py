from dataclasses import dataclass
from typing import Literal

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_MAX_RETRY_AFTER = 125.0
DEFAULT_SAFETY_MARGIN = 5.0

# Placeholder password sent alongside a token used as the Basic auth username
TOKEN_BASIC_AUTH_PASSWORD = "x"
TOKEN_HEADER = "X-LighthouseToken"
TOKEN_PARAMETER = "_token"

AuthMode = Literal["basic_token", "parameter", "header", "basic", "anonymous"]


@dataclass(frozen=True)
class Credentials:
    # API token; takes precedence over email/password when set.
    token: str | None = None
    token_as_basic_auth: bool = False
    token_as_parameter: bool = False
    email: str | None = None
    password: str | None = None

    @property
    def mode(self) -> AuthMode:
        if self.token:
            if self.token_as_basic_auth:
                return "basic_token"
            if self.token_as_parameter:
                return "parameter"
            return "header"
        if self.email and self.password:
            return "basic"
        return "anonymous"


@dataclass(frozen=True)
class RateLimitConfig:
    # Seconds per token. 0 disables rate limiting.
    interval: float = 0.0
    burst: int = 1

    @property
    def enabled(self) -> bool:
        return self.interval > 0


DEFAULT_RATE_LIMIT = RateLimitConfig(interval=0.6, burst=1)


@dataclass(frozen=True)
class RetryConfig:
    # Retry on 429 only; transport errors are never retried.
    enabled: bool = False
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    max_retry_after: float = DEFAULT_MAX_RETRY_AFTER
    safety_margin: float = DEFAULT_SAFETY_MARGIN
    retry_after_header: str = "X-Rate-Limit-Retry-After"

    @property
    def attempts(self) -> int:
        if not self.enabled:
            return 1
        return self.max_attempts if self.max_attempts > 0 else DEFAULT_RETRY_ATTEMPTS

    @property
    def ceiling(self) -> float:
        return self.max_retry_after if self.max_retry_after > 0 else DEFAULT_MAX_RETRY_AFTER
