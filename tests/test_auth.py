import base64
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import requests

from lighthouse_api import Credentials, LighthouseAuth, scope_client, scope_session
from lighthouse_api.auth import AUTH_EXTENSION

HOST = "acme.lighthouseapp.com"


def _prepared(url):
    return requests.Request("GET", url).prepare()


def _basic(user, pw):
    return "Basic " + base64.b64encode(f"{user}:{pw}".encode()).decode()


CASES = [
    (Credentials(token="abc123"), {"X-LighthouseToken": "abc123"}, None),
    (Credentials(token="abc123", token_as_basic_auth=True), {"Authorization": _basic("abc123", "x")}, None),
    (Credentials(token="abc123", token_as_parameter=True), {}, "_token=abc123"),
    (Credentials(email="me@example.com", password="pw"), {"Authorization": _basic("me@example.com", "pw")}, None),
    (Credentials(), {}, None),
]


@pytest.mark.parametrize("creds,headers,query", CASES)
def test_requests_modes(creds, headers, query):
    auth = LighthouseAuth(creds, HOST)
    r = auth(_prepared(f"https://{HOST}/projects.json"))
    for k, v in headers.items():
        assert r.headers[k] == v
    if not headers:
        assert "Authorization" not in r.headers
        assert "X-LighthouseToken" not in r.headers
    if query:
        assert query in r.url
    else:
        assert "_token" not in r.url


@pytest.mark.parametrize("creds,headers,query", CASES)
def test_httpx_modes(creds, headers, query):
    auth = LighthouseAuth(creds, HOST)
    flow = auth.auth_flow(httpx.Request("GET", f"https://{HOST}/projects.json"))
    req = next(flow)
    for k, v in headers.items():
        assert req.headers[k] == v
    if query:
        assert req.url.params["_token"] == "abc123"
    else:
        assert "_token" not in req.url.params


@pytest.mark.parametrize("creds,_headers,_query", CASES)
def test_foreign_host_gets_no_credentials(creds, _headers, _query):
    auth = LighthouseAuth(creds, HOST)
    url = "https://attachments.s3.amazonaws.com/file.png"
    r = auth(_prepared(url))
    assert "Authorization" not in r.headers
    assert "X-LighthouseToken" not in r.headers
    assert r.url == url

    req = next(auth.auth_flow(httpx.Request("GET", url)))
    assert "Authorization" not in req.headers
    assert "X-LighthouseToken" not in req.headers
    assert "_token" not in req.url.params


def test_subdomain_of_api_host_is_foreign():
    auth = LighthouseAuth(Credentials(token="t"), HOST)
    r = auth(_prepared(f"https://evil.{HOST}.example.com/"))
    assert "X-LighthouseToken" not in r.headers


def test_host_match_is_case_insensitive():
    auth = LighthouseAuth(Credentials(token="t"), "ACME.lighthouseapp.com")
    r = auth(_prepared("https://acme.LighthouseApp.com/x.json"))
    assert r.headers["X-LighthouseToken"] == "t"


def test_requests_call_strips_carried_over_header():
    auth = LighthouseAuth(Credentials(token="t"), HOST)
    r = _prepared("https://files.example.com/a")
    r.headers["X-LighthouseToken"] = "t"
    auth(r)
    assert "X-LighthouseToken" not in r.headers


def test_rescope_strips_foreign_httpx_request():
    auth = LighthouseAuth(Credentials(token="t", token_as_parameter=True), HOST)
    req = httpx.Request(
        "GET", "https://files.example.com/a?_token=t&x=1", headers={"X-LighthouseToken": "t"}
    )
    auth.rescope(req)
    assert "X-LighthouseToken" not in req.headers
    assert "_token" not in req.url.params
    assert req.url.params["x"] == "1"

    own = httpx.Request("GET", f"https://{HOST}/a?_token=stale")
    auth.rescope(own)
    assert own.url.params.get_list("_token") == ["t"]


def test_requests_parameter_mode_replaces_existing_token():
    auth = LighthouseAuth(Credentials(token="abc123", token_as_parameter=True), HOST)
    r = auth(_prepared(f"https://{HOST}/projects.json?_token=old&page=2"))
    query = parse_qs(urlsplit(r.url).query)
    assert query["_token"] == ["abc123"]
    assert query["page"] == ["2"]


def test_requests_parameter_mode_is_idempotent():
    auth = LighthouseAuth(Credentials(token="abc123", token_as_parameter=True), HOST)
    r = auth(auth(_prepared(f"https://{HOST}/projects.json")))
    assert parse_qs(urlsplit(r.url).query)["_token"] == ["abc123"]


def test_auth_flow_tags_request_with_its_auth():
    auth = LighthouseAuth(Credentials(token="t"), HOST)
    req = next(auth.auth_flow(httpx.Request("GET", f"https://{HOST}/a", extensions={"timeout": {}})))
    assert req.extensions[AUTH_EXTENSION] is auth
    assert "timeout" in req.extensions


def test_scope_session_patches_once():
    s = requests.Session()
    scope_session(s)
    patched = s.rebuild_auth
    scope_session(s)
    assert s.rebuild_auth is patched


@pytest.mark.asyncio
async def test_scope_client_adds_hook_once():
    async with httpx.AsyncClient() as client:
        scope_client(client)
        scope_client(client)
        assert len(client.event_hooks["request"]) == 1
