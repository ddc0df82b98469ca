import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from .errors import check_response

DEFAULT_DOMAIN = "lighthouseapp.com"


def base_url(account: str) -> str:
    return f"https://{account}.{DEFAULT_DOMAIN}"


def parse_id(text: str) -> int:
    try:
        return int(str(text).strip(), 10)
    except ValueError:
        raise ValueError(f"invalid id {text!r}") from None


def paginate(fetch_page: Callable[[int], Iterable], start: int = 1) -> Iterator:
    """Yield items from fetch_page(1), fetch_page(2), ... until a page comes back empty."""
    page = start
    while True:
        items = list(fetch_page(page))
        if not items:
            return
        yield from items
        page += 1


@dataclass
class Plan:
    plan: str
    free: bool
    users: int
    projects: int
    storage: int


def _text(root: ET.Element, tag: str) -> str:
    el = root.find(tag)
    return (el.text or "").strip() if el is not None else ""


def _int(root: ET.Element, tag: str) -> int:
    raw = _text(root, tag)
    return int(raw) if raw else 0


def parse_plan(content: bytes) -> Plan:
    root = ET.fromstring(content)
    if root.tag != "hash":
        raise ValueError(f"unexpected plan document root <{root.tag}>")
    return Plan(
        plan=_text(root, "plan"),
        free=_text(root, "free").lower() == "true",
        users=_int(root, "users"),
        projects=_int(root, "projects"),
        storage=_int(root, "storage"),
    )


def get_plan(transport) -> Plan:
    """Fetch the account plan.

    Only the XML endpoint works; plan.json answers 406 Not Acceptable.
    """
    resp = transport.send("GET", "/plan.xml")
    check_response(resp, 200)
    return parse_plan(resp.content)


async def aget_plan(transport) -> Plan:
    resp = await transport.send("GET", "/plan.xml")
    check_response(resp, 200)
    return parse_plan(resp.content)
