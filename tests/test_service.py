import pytest

from lighthouse_api import (
    Credentials,
    Transport,
    UnexpectedResponseError,
    base_url,
    get_plan,
    paginate,
    parse_id,
)

PLAN_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<hash>
  <plan>Gold</plan>
  <free type="boolean">false</free>
  <users type="integer">20</users>
  <projects type="integer">15</projects>
  <storage type="integer">5000</storage>
</hash>
"""


def test_base_url():
    assert base_url("acme") == "https://acme.lighthouseapp.com"


def test_parse_id():
    assert parse_id("42") == 42  # noqa: PLR2004
    assert parse_id(" 7 ") == 7  # noqa: PLR2004
    with pytest.raises(ValueError, match="invalid id 'abc'"):
        parse_id("abc")


def test_paginate_stops_on_empty_page():
    pages = {1: ["a", "b"], 2: ["c"], 3: [], 4: ["never"]}
    seen = []

    def fetch(page):
        seen.append(page)
        return pages[page]

    assert list(paginate(fetch)) == ["a", "b", "c"]
    assert seen == [1, 2, 3]


def test_get_plan(session, adapter):
    adapter.responses = [(200, {"Content-Type": "application/xml"}, PLAN_XML)]
    t = Transport(base_url("acme"), Credentials(token="t"), session=session)
    plan = get_plan(t)
    assert plan.plan == "Gold"
    assert plan.free is False
    assert (plan.users, plan.projects, plan.storage) == (20, 15, 5000)
    assert adapter.sent[0].url == "https://acme.lighthouseapp.com/plan.xml"


def test_get_plan_unexpected_status(session, adapter):
    adapter.responses = [(406, {}, b"")]
    t = Transport(base_url("acme"), session=session)
    with pytest.raises(UnexpectedResponseError):
        get_plan(t)
