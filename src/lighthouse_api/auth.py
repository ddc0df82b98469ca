import base64
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from .types import TOKEN_BASIC_AUTH_PASSWORD, TOKEN_HEADER, TOKEN_PARAMETER, Credentials

# httpx request extension naming the LighthouseAuth that issued the request;
# redirect requests inherit it from the request they follow
AUTH_EXTENSION = "lighthouse_auth"


def basic_auth_header(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode()
    return "Basic " + base64.b64encode(raw).decode("ascii")


def _without_param(url: str, name: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    return urlunsplit(parts._replace(query=urlencode(query)))


class LighthouseAuth(httpx.Auth):
    """Attach Lighthouse credentials to requests bound for the API host.

    - requests: pass as ``auth=``; uses the ``__call__(prepared_request)`` protocol.
      ``scope_session(session)`` makes redirect hops go back through the auth
      that issued the original request.
    - httpx: pass as ``auth=``; implements ``auth_flow``. ``scope_client(client)``
      does the same for redirect hops via a request event hook.

    Requests to any other host (for example an attachment download redirected
    to object storage) go out without credentials.
    """

    def __init__(self, credentials: Credentials | None, api_host: str):
        self.credentials = credentials or Credentials()
        self.api_host = api_host.lower()

    def applies_to(self, host: str | None) -> bool:
        return bool(host) and host.lower() == self.api_host

    # ------------------------ requests auth protocol ------------------------
    def __call__(self, r):
        # Marks the request (and the copies requests makes for redirects) as ours
        if hasattr(r, "register_hook") and self._owner_hook not in r.hooks["response"]:
            r.register_hook("response", self._owner_hook)
        if not self.applies_to(urlsplit(r.url).hostname):
            # Our header survives a cross-host redirect in requests; Authorization does not
            r.headers.pop(TOKEN_HEADER, None)
            return r
        c = self.credentials
        mode = c.mode
        if mode == "basic_token":
            r.headers["Authorization"] = basic_auth_header(c.token, TOKEN_BASIC_AUTH_PASSWORD)
        elif mode == "parameter":
            r.prepare_url(_without_param(r.url, TOKEN_PARAMETER), {TOKEN_PARAMETER: c.token})
        elif mode == "header":
            r.headers[TOKEN_HEADER] = c.token
        elif mode == "basic":
            r.headers["Authorization"] = basic_auth_header(c.email, c.password)
        return r

    def _owner_hook(self, response, *args, **kwargs):
        return None

    # ------------------------ httpx ------------------------
    def auth_flow(self, request):
        request.extensions = {**request.extensions, AUTH_EXTENSION: self}
        self.rescope(request)
        yield request

    def rescope(self, request) -> None:
        """Apply credentials to an httpx request for the API host, strip them otherwise."""
        if not self.applies_to(request.url.host):
            request.headers.pop(TOKEN_HEADER, None)
            if TOKEN_PARAMETER in request.url.params:
                request.url = request.url.copy_remove_param(TOKEN_PARAMETER)
            return
        c = self.credentials
        mode = c.mode
        if mode == "basic_token":
            request.headers["Authorization"] = basic_auth_header(c.token, TOKEN_BASIC_AUTH_PASSWORD)
        elif mode == "parameter":
            request.url = request.url.copy_set_param(TOKEN_PARAMETER, c.token)
        elif mode == "header":
            request.headers[TOKEN_HEADER] = c.token
        elif mode == "basic":
            request.headers["Authorization"] = basic_auth_header(c.email, c.password)


def _request_owner(prepared_request) -> LighthouseAuth | None:
    for hook in prepared_request.hooks.get("response", []):
        owner = getattr(hook, "__self__", None)
        if isinstance(owner, LighthouseAuth):
            return owner
    return None


def scope_session(session):
    """Patch session.rebuild_auth so each redirect hop is re-authenticated by the
    LighthouseAuth that issued the original request, and by no other.

    Safe to call repeatedly; the session is patched once. The patch is limited to
    this session instance.
    """
    if getattr(session, "_lighthouse_scoped", False):
        return session
    orig = session.rebuild_auth

    def rebuild_auth(prepared_request, response):
        orig(prepared_request, response)
        owner = _request_owner(prepared_request)
        if owner is not None:
            owner(prepared_request)

    session.rebuild_auth = rebuild_auth
    session._lighthouse_scoped = True
    return session


async def _rescope_request(request):
    owner = request.extensions.get(AUTH_EXTENSION)
    if owner is not None:
        owner.rescope(request)


def scope_client(client):
    """Add one request event hook to an httpx.AsyncClient that hands every hop,
    including redirects, back to the LighthouseAuth that issued it.

    Requests not sent through a LighthouseAuth are left alone. Safe to call
    repeatedly; the hook is added once.
    """
    hooks = client.event_hooks
    if _rescope_request not in hooks.get("request", []):
        client.event_hooks = {
            **hooks,
            "request": [*hooks.get("request", []), _rescope_request],
        }
    return client
