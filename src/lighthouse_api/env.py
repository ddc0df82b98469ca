import os
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .service import base_url as account_base_url
from .types import (
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_SAFETY_MARGIN,
    Credentials,
    RateLimitConfig,
    RetryConfig,
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class ClientConfig:
    base_url: str
    account: str | None = None
    credentials: Credentials = field(default_factory=Credentials)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export ") :].strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # A missing file just means nothing to augment the environment with
        pass
    return values


def _bool(env: dict[str, str], name: str, prefix: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigurationError(f"{prefix}{name}: expected a boolean, got {raw!r}")


def _number(env: dict[str, str], name: str, prefix: str, default, kind=float):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{prefix}{name}: expected a number, got {raw!r}") from e


def load_config_from_env(prefix: str = "LH_", env_path: str | None = None) -> ClientConfig:
    """Build a ClientConfig from environment variables.

    Recognised variables (shown with the default "LH_" prefix):

    - LH_ACCOUNT or LH_BASE_URL (one is required; LH_BASE_URL wins)
    - LH_TOKEN, LH_TOKEN_AS_BASIC_AUTH, LH_TOKEN_AS_PARAMETER
    - LH_EMAIL, LH_PASSWORD
    - LH_RATE_LIMIT_INTERVAL (seconds, 0 disables), LH_RATE_LIMIT_BURST
    - LH_RETRY, LH_RETRY_ATTEMPTS, LH_MAX_RETRY_AFTER, LH_RETRY_SAFETY_MARGIN

    If 'env_path' is provided, variables from the .env file are used to augment
    lookups without mutating the process environment. Values in the actual
    environment take precedence over the file.
    """
    file_env = _parse_env_file(env_path) if env_path else {}
    merged = {**file_env, **os.environ}
    env = {k[len(prefix) :]: v for k, v in merged.items() if k.startswith(prefix)}

    account = env.get("ACCOUNT") or None
    url = env.get("BASE_URL") or (account_base_url(account) if account else None)
    if not url:
        raise ConfigurationError(f"set {prefix}ACCOUNT or {prefix}BASE_URL")

    credentials = Credentials(
        token=env.get("TOKEN") or None,
        token_as_basic_auth=_bool(env, "TOKEN_AS_BASIC_AUTH", prefix),
        token_as_parameter=_bool(env, "TOKEN_AS_PARAMETER", prefix),
        email=env.get("EMAIL") or None,
        password=env.get("PASSWORD") or None,
    )
    rate_limit = RateLimitConfig(
        interval=_number(env, "RATE_LIMIT_INTERVAL", prefix, 0.0),
        burst=_number(env, "RATE_LIMIT_BURST", prefix, 1, int),
    )
    retry = RetryConfig(
        enabled=_bool(env, "RETRY", prefix),
        max_attempts=_number(env, "RETRY_ATTEMPTS", prefix, DEFAULT_RETRY_ATTEMPTS, int),
        max_retry_after=_number(env, "MAX_RETRY_AFTER", prefix, DEFAULT_MAX_RETRY_AFTER),
        safety_margin=_number(env, "RETRY_SAFETY_MARGIN", prefix, DEFAULT_SAFETY_MARGIN),
    )
    return ClientConfig(
        base_url=url,
        account=account,
        credentials=credentials,
        rate_limit=rate_limit,
        retry=retry,
    )
