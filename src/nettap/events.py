"""Typed events consumed by the capture service.

The CDP glue turns raw protocol messages into these. Tests build them
directly.

PUBLIC API:
  - ClickEvent: Click reported by the injected probe
  - RequestEvent: Outgoing request observed on the page
  - ResponseEvent: Response observed on the page, with a lazy body reader
  - Interrupt: Termination request
  - BodyReader: Protocol for lazy response body access
  - StaticBody: BodyReader over an in-memory body
  - Event: Union of the four event types
"""

from dataclasses import dataclass, field
from typing import Protocol


class BodyReader(Protocol):
    """Lazy access to a response body.

    Both methods may raise when the body is unavailable.
    """

    def text(self) -> str: ...

    def buffer(self) -> bytes: ...


class StaticBody:
    """BodyReader over a body already in memory.

    ``None`` means no body at all, so both reads fail. Bytes that are not
    valid UTF-8 fail the text read.
    """

    def __init__(self, body: str | bytes | None = None):
        self._body = body

    def text(self) -> str:
        if self._body is None:
            raise RuntimeError("No response body")
        if isinstance(self._body, bytes):
            return self._body.decode("utf-8")
        return self._body

    def buffer(self) -> bytes:
        if self._body is None:
            raise RuntimeError("No response body")
        if isinstance(self._body, str):
            return self._body.encode("utf-8")
        return self._body


@dataclass(frozen=True)
class ClickEvent:
    """Click surfaced from the monitored document."""

    tag_name: str | None = None
    text: str | None = None
    href: str | None = None
    onclick: str | None = None
    class_name: str | None = None
    element_id: str | None = None
    timestamp: str | None = None

    @classmethod
    def from_probe(cls, payload: dict) -> "ClickEvent":
        """Build from the click probe's JSON payload."""

        def _str(key: str) -> str | None:
            value = payload.get(key)
            if value is None or value == "" or isinstance(value, (dict, list)):
                return None
            return value if isinstance(value, str) else str(value)

        return cls(
            tag_name=_str("tagName"),
            text=_str("text"),
            href=_str("href"),
            onclick=_str("onclick"),
            class_name=_str("className"),
            element_id=_str("id"),
            timestamp=_str("timestamp"),
        )


@dataclass(frozen=True)
class RequestEvent:
    """Outgoing request. ``request_id`` is the browser's id, never the ledger id."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    post_data: str | None = None
    request_id: str | None = None
    has_post_data: bool = False


@dataclass(frozen=True)
class ResponseEvent:
    """Incoming response. The body is read only if the response correlates."""

    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: BodyReader = field(default_factory=StaticBody)
    request_id: str | None = None


@dataclass(frozen=True)
class Interrupt:
    """External termination request."""

    reason: str = "interrupt"


type Event = ClickEvent | RequestEvent | ResponseEvent | Interrupt


__all__ = [
    "BodyReader",
    "StaticBody",
    "ClickEvent",
    "RequestEvent",
    "ResponseEvent",
    "Interrupt",
    "Event",
]
