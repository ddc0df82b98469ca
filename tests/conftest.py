import http
import time

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

API = "https://acme.lighthouseapp.com"


def make_response(status=200, headers=None, content=b"", request=None, url=None):
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp._content = content
    resp._content_consumed = True
    resp.request = request
    resp.url = url or (request.url if request is not None else API)
    resp.reason = http.HTTPStatus(status).phrase
    return resp


class RecordingAdapter(BaseAdapter):
    """requests adapter that records prepared requests and replays canned responses.

    ``responses`` items are (status, headers, content) tuples, exceptions to raise,
    or callables taking the prepared request.
    """

    def __init__(self, responses=None):
        super().__init__()
        self.responses = list(responses or [])
        self.sent = []
        self.bodies = []
        self.stamps = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.stamps.append(time.monotonic())
        self.sent.append(request)
        self.bodies.append(request.body)
        item = self.responses.pop(0) if self.responses else (200, {}, b"")
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(request)
        status, headers, content = item
        return make_response(status, headers, content, request=request)

    def close(self):
        pass


@pytest.fixture
def adapter():
    return RecordingAdapter()


@pytest.fixture
def session(adapter):
    s = requests.Session()
    s.trust_env = False
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


@pytest.fixture
def sleeps(monkeypatch):
    """Record time.sleep calls made by the sync transport instead of sleeping."""
    calls = []
    monkeypatch.setattr("lighthouse_api.transport.time.sleep", calls.append)
    return calls
