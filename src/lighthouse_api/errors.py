import http
import json
from dataclasses import dataclass

UNPROCESSABLE_ENTITY = 422


class LighthouseError(Exception):
    """Base class for errors raised by lighthouse_api."""


class ConfigurationError(LighthouseError, ValueError):
    pass


class RequestCancelledError(LighthouseError):
    """Raised when a send is cancelled while waiting on the rate limiter or a backoff."""


@dataclass
class Unprocessable:
    field: str
    message: str

    @classmethod
    def from_json(cls, value) -> "Unprocessable":
        # The API encodes each validation failure as a [field, message] pair
        if not isinstance(value, list):
            raise ValueError(f"Unprocessable.from_json: expected a list, got {type(value).__name__}")
        if len(value) != 2:  # noqa: PLR2004
            raise ValueError(f"Unprocessable.from_json: length is {len(value)}, expected 2")
        return cls(field=str(value[0]), message=str(value[1]))

    def to_json(self) -> list[str]:
        return [self.field, self.message]

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class Unprocessables(LighthouseError):
    def __init__(self, items: list[Unprocessable]):
        self.items = list(items)
        super().__init__(", ".join(str(u) for u in self.items))

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)


def _reason(response) -> str:
    # requests exposes .reason, httpx exposes .reason_phrase
    reason = getattr(response, "reason", None) or getattr(response, "reason_phrase", None)
    if not reason:
        try:
            reason = http.HTTPStatus(response.status_code).phrase
        except ValueError:
            reason = ""
    return reason


def _status_text(code: int) -> str:
    try:
        return http.HTTPStatus(code).phrase
    except ValueError:
        return ""


class UnexpectedResponseError(LighthouseError):
    """The server answered with a status other than the one the caller expected.

    For 422 Unprocessable Entity responses the body is decoded into
    ``unprocessables``; for every other status the raw body is kept in ``body``.
    """

    def __init__(self, response, expected_code: int):
        self.response = response
        self.expected_code = expected_code
        self.status_code = response.status_code
        self.body: bytes | None = None
        self.unprocessables: Unprocessables | None = None
        content = response.content or b""
        if self.status_code == UNPROCESSABLE_ENTITY:
            try:
                self.unprocessables = Unprocessables(
                    [Unprocessable.from_json(v) for v in json.loads(content)]
                )
            except (ValueError, TypeError):
                self.body = content
        else:
            self.body = content
        super().__init__(self._message())

    def _message(self) -> str:
        if self.unprocessables is not None:
            return str(self.unprocessables)
        expected = f"{self.expected_code} {_status_text(self.expected_code)}".strip()
        received = f"{self.status_code} {_reason(self.response)}".strip()
        return f"expected {expected} response, received {received}"


def check_response(response, expected: int) -> None:
    """Raise UnexpectedResponseError unless response.status_code == expected."""
    if response.status_code != expected:
        raise UnexpectedResponseError(response, expected)
