import asyncio
import contextlib
import logging
import posixpath
import threading
import time
from typing import IO, Union
from urllib.parse import urlsplit

import httpx
import requests

from .auth import LighthouseAuth, scope_client, scope_session
from .errors import ConfigurationError, RequestCancelledError
from .limiter import AsyncTokenBucket, TokenBucket
from .types import Credentials, RateLimitConfig, RetryConfig

TOO_MANY_REQUESTS = 429

# Content-Type defaults keyed by the extension of the request path
CONTENT_TYPES = {
    ".json": "application/json",
    ".xml": "application/xml",
}

Body = Union[bytes, bytearray, str, IO, None]

# ---------- Common helpers ----------


def _buffer_body(body: Body) -> Union[bytes, None]:
    """Read body fully so every attempt can resend the same bytes."""
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    if hasattr(body, "read"):
        data = body.read()
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    raise TypeError(f"unsupported body type {type(body).__name__}")


def _default_content_type(url: str) -> Union[str, None]:
    ext = posixpath.splitext(urlsplit(url).path)[1].lower()
    return CONTENT_TYPES.get(ext)


def parse_retry_after(value: Union[str, None], ceiling: float) -> float:
    """Seconds to wait after a 429, clamped to ceiling.

    A missing, non-integer or non-positive value yields the ceiling.
    """
    if value:
        try:
            n = int(value.strip())
        except ValueError:
            n = 0
        if n > 0:
            return min(float(n), ceiling)
    return ceiling


# ---------- Base transport (shared logic; I/O handled by subclasses) ----------


class _BaseTransport:
    def __init__(
        self,
        base_url: str,
        credentials: Union[Credentials, None] = None,
        rate_limit: Union[RateLimitConfig, None] = None,
        retry: Union[RetryConfig, None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize a transport.

        Args:
            base_url (str): API root, e.g. https://acme.lighthouseapp.com
            credentials (Credentials | None): credentials; anonymous if None
            rate_limit (RateLimitConfig | None): token bucket settings; disabled if None
            retry (RetryConfig | None): 429 retry settings; disabled if None
            log_level (int | None): level for the "lighthouse_api" logger

        Raises:
            ConfigurationError: if base_url is not an absolute http(s) URL or the
                rate limit settings are invalid
        """
        parts = urlsplit(base_url or "")
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(f"invalid base URL {base_url!r}")
        self.base_url = base_url.rstrip("/")
        self.api_host = parts.hostname
        self.credentials = credentials or Credentials()
        self.rate_limit = rate_limit or RateLimitConfig()
        self.retry = retry or RetryConfig()
        self.auth = LighthouseAuth(self.credentials, self.api_host)
        self._logger = logging.getLogger("lighthouse_api")
        if log_level is not None:
            self._logger.setLevel(log_level)

    def _make_limiter(self, cls):
        try:
            return cls.from_config(self.rate_limit)
        except ValueError as e:
            raise ConfigurationError(f"invalid rate limit: {e}") from e

    def resolve(self, url: str) -> str:
        if url.startswith("http"):
            return url
        return self.base_url + url

    def _headers_for(self, url: str, headers: Union[dict, None]) -> dict[str, str]:
        # fresh dict per attempt
        out = dict(headers or {})
        if not any(k.lower() == "content-type" for k in out):
            ctype = _default_content_type(url)
            if ctype:
                out["Content-Type"] = ctype
        return out

    def _should_retry(self, status_code: int, attempt: int, attempts: int) -> bool:
        return self.retry.enabled and status_code == TOO_MANY_REQUESTS and attempt < attempts

    def _backoff(self, response_headers) -> float:
        wait = parse_retry_after(
            response_headers.get(self.retry.retry_after_header), self.retry.ceiling
        )
        return wait + self.retry.safety_margin

    def _log_exhausted(self, method: str, url: str, attempts: int) -> None:
        if self.retry.enabled:
            self._logger.warning(
                f"{method} {url} still rate limited after {attempts} attempts"
            )


# ---------- Sync transport (requests) ----------


class Transport(_BaseTransport):
    """Authenticating, rate limited, retrying transport over a requests.Session.

    The token bucket is thread-safe and the configuration is immutable, so one
    Transport can pace sends from several threads. requests does not document
    Session as thread-safe; concurrent sends over one session rely on its
    connection pool. Give each thread its own Transport (sharing nothing) if
    that matters more than a shared rate limit.

    A supplied session has its rebuild_auth patched once so each redirect hop is
    re-authenticated by the Transport that issued it; credentials never follow a
    redirect off the API host.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Union[Credentials, None] = None,
        rate_limit: Union[RateLimitConfig, None] = None,
        retry: Union[RetryConfig, None] = None,
        session: Union[requests.Session, None] = None,
        log_level: Union[int, None] = None,
    ):
        super().__init__(base_url, credentials, rate_limit, retry, log_level)
        self.limiter: Union[TokenBucket, None] = self._make_limiter(TokenBucket)
        if session is None:
            self.session = requests.Session()
            self._own_session = True
        else:
            self.session = session
            self._own_session = False
        scope_session(self.session)

    @classmethod
    def from_env(cls, prefix: str = "LH_", env_path: Union[str, None] = None, **kwargs):
        from .env import load_config_from_env  # noqa: PLC0415

        cfg = load_config_from_env(prefix=prefix, env_path=env_path)
        return cls(
            cfg.base_url,
            credentials=cfg.credentials,
            rate_limit=cfg.rate_limit,
            retry=cfg.retry,
            **kwargs,
        )

    def close(self):
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _sleep(self, delay: float, cancel: Union[threading.Event, None]) -> None:
        if cancel is None:
            time.sleep(delay)
        elif cancel.wait(delay):
            raise RequestCancelledError("cancelled while backing off after 429")

    def send(
        self,
        method: str,
        url: str,
        body: Body = None,
        headers: Union[dict, None] = None,
        cancel: Union[threading.Event, None] = None,
    ) -> requests.Response:
        """Send one logical request, retrying on 429 if enabled.

        Transport errors (requests.RequestException) propagate and are never
        retried. Any status, including a final 429, is returned to the caller.
        Setting ``cancel`` aborts a pending rate limit wait or backoff with
        RequestCancelledError.
        """
        target = self.resolve(url)
        data = _buffer_body(body)
        attempts = self.retry.attempts
        method = method.upper()
        resp = None
        for attempt in range(1, attempts + 1):
            if cancel is not None and cancel.is_set():
                raise RequestCancelledError(f"{method} {target} cancelled")
            req_headers = self._headers_for(target, headers)
            if self.limiter is not None:
                self.limiter.acquire(cancel)
            self._logger.debug(f"req start method={method} url={target} attempt={attempt}")
            resp = self.session.request(
                method, target, data=data, headers=req_headers, auth=self.auth
            )
            self._logger.debug(f"req done method={method} url={target} status={resp.status_code}")
            if not self._should_retry(resp.status_code, attempt, attempts):
                break
            delay = self._backoff(resp.headers)
            self._logger.info(
                f"429 on {method} {target}; retrying in {delay:.0f}s "
                f"(attempt {attempt}/{attempts})"
            )
            resp.close()
            self._sleep(delay, cancel)
        if resp.status_code == TOO_MANY_REQUESTS:
            self._log_exhausted(method, target, attempts)
        return resp

    # sugar
    def get(self, url: str, **kw):
        return self.send("GET", url, **kw)

    def post(self, url: str, body: Body = None, **kw):
        return self.send("POST", url, body, **kw)

    def put(self, url: str, body: Body = None, **kw):
        return self.send("PUT", url, body, **kw)

    def delete(self, url: str, **kw):
        return self.send("DELETE", url, **kw)


# ---------- Async transport (httpx) ----------


class AsyncTransport(_BaseTransport):
    """Async counterpart of Transport over an httpx.AsyncClient.

    Cancel a pending send by cancelling its task (or with asyncio.wait_for);
    a token reserved from the bucket is handed back. A supplied client gets one
    request event hook (added once, however many transports share the client)
    that re-scopes each redirect hop to the transport that issued it.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Union[Credentials, None] = None,
        rate_limit: Union[RateLimitConfig, None] = None,
        retry: Union[RetryConfig, None] = None,
        client: Union[httpx.AsyncClient, None] = None,
        log_level: Union[int, None] = None,
    ):
        super().__init__(base_url, credentials, rate_limit, retry, log_level)
        self.limiter: Union[AsyncTokenBucket, None] = self._make_limiter(AsyncTokenBucket)
        if client is None:
            self.client = httpx.AsyncClient()
            self._own_client = True
        else:
            self.client = client
            self._own_client = False
        scope_client(self.client)

    @classmethod
    def from_env(cls, prefix: str = "LH_", env_path: Union[str, None] = None, **kwargs):
        from .env import load_config_from_env  # noqa: PLC0415

        cfg = load_config_from_env(prefix=prefix, env_path=env_path)
        return cls(
            cfg.base_url,
            credentials=cfg.credentials,
            rate_limit=cfg.rate_limit,
            retry=cfg.retry,
            **kwargs,
        )

    async def aclose(self):
        if self._own_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def send(
        self,
        method: str,
        url: str,
        body: Body = None,
        headers: Union[dict, None] = None,
    ) -> httpx.Response:
        """Send one logical request, retrying on 429 if enabled.

        Transport errors (httpx.TransportError) propagate and are never retried.
        """
        target = self.resolve(url)
        data = _buffer_body(body)
        attempts = self.retry.attempts
        method = method.upper()
        resp = None
        for attempt in range(1, attempts + 1):
            req_headers = self._headers_for(target, headers)
            if self.limiter is not None:
                await self.limiter.acquire()
            self._logger.debug(f"req start method={method} url={target} attempt={attempt}")
            resp = await self.client.request(
                method, target, content=data, headers=req_headers, auth=self.auth
            )
            self._logger.debug(f"req done method={method} url={target} status={resp.status_code}")
            if not self._should_retry(resp.status_code, attempt, attempts):
                break
            delay = self._backoff(resp.headers)
            self._logger.info(
                f"429 on {method} {target}; retrying in {delay:.0f}s "
                f"(attempt {attempt}/{attempts})"
            )
            await resp.aclose()
            await asyncio.sleep(delay)
        if resp.status_code == TOO_MANY_REQUESTS:
            self._log_exhausted(method, target, attempts)
        return resp

    async def get(self, url: str, **kw):
        return await self.send("GET", url, **kw)

    async def post(self, url: str, body: Body = None, **kw):
        return await self.send("POST", url, body, **kw)

    async def put(self, url: str, body: Body = None, **kw):
        return await self.send("PUT", url, body, **kw)

    async def delete(self, url: str, **kw):
        return await self.send("DELETE", url, **kw)
