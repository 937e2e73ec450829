"""Ledger data model for nettap.

Trace files and the session summary share these shapes. JSON keys are
camelCase so trace files stay readable next to browser devtools exports.

PUBLIC API:
  - ClickContext: One user interaction surfaced by the click probe
  - ResponseRecord: Response attached to a ledger entry
  - CapturedRequest: One ledger entry
  - BodyKind: Literal type of ResponseRecord.type
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Literal

from nettap.errors import AlreadyResolvedError

type BodyKind = Literal["text", "binary", "empty"]


@dataclass(frozen=True)
class ClickContext:
    """A single click on the monitored page.

    Frozen so a context attached to a ledger entry cannot be altered by
    later clicks.
    """

    tag_name: str | None = None
    text: str | None = None
    href: str | None = None
    onclick: str | None = None
    class_name: str | None = None
    element_id: str | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict:
        return {
            "tagName": self.tag_name,
            "text": self.text,
            "href": self.href,
            "onclick": self.onclick,
            "className": self.class_name,
            "id": self.element_id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClickContext":
        return cls(
            tag_name=data.get("tagName"),
            text=data.get("text"),
            href=data.get("href"),
            onclick=data.get("onclick"),
            class_name=data.get("className"),
            element_id=data.get("id"),
            timestamp=data.get("timestamp"),
        )


@dataclass(frozen=True)
class ResponseRecord:
    """Response attached to a ledger entry.

    Attributes:
        status: HTTP status code.
        headers: Response headers as received.
        body: Text body, or a placeholder for binary and empty bodies.
        type: Which branch of the body fallback chain produced the body.
        full_length: Characters of text, bytes of binary, 0 when empty.
    """

    status: int
    headers: dict[str, str]
    body: str
    type: BodyKind
    full_length: int

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "headers": dict(self.headers),
            "body": self.body,
            "type": self.type,
            "fullLength": self.full_length,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResponseRecord":
        return cls(
            status=data.get("status", 0),
            headers=data.get("headers") or {},
            body=data.get("body", ""),
            type=data.get("type", "empty"),
            full_length=data.get("fullLength", 0),
        )


@dataclass
class CapturedRequest:
    """One ledger entry: a captured request and its eventual response.

    Everything except ``response`` is fixed at capture time. ``response``
    moves from None to a ResponseRecord once, through ``resolve()``.
    """

    id: int
    timestamp: str
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    post_data: str | None = None
    query_params: str = ""
    triggered_by: ClickContext | None = None
    action_group: str | None = None
    is_billing_request: bool = False
    module: str | None = None
    plugin: str | None = None
    response: ResponseRecord | None = None

    @property
    def resolved(self) -> bool:
        return self.response is not None

    @property
    def status(self) -> int | None:
        return self.response.status if self.response else None

    def resolve(self, response: ResponseRecord) -> None:
        """Attach the correlated response.

        Raises:
            AlreadyResolvedError: If a response is already attached.
        """
        if self.response is not None:
            raise AlreadyResolvedError(f"Request {self.id} already has a response")
        self.response = response

    def to_dict(self) -> dict[str, Any]:
        """Serialize for trace files. Absent optional fields are omitted."""
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "url": self.url,
            "method": self.method,
            "headers": copy.deepcopy(self.headers),
        }
        if self.post_data is not None:
            data["postData"] = self.post_data
        data["queryParams"] = self.query_params
        data["triggeredBy"] = self.triggered_by.to_dict() if self.triggered_by else None
        data["actionGroup"] = self.action_group
        data["isBillingRequest"] = self.is_billing_request
        if self.module is not None:
            data["module"] = self.module
        if self.plugin is not None:
            data["plugin"] = self.plugin
        if self.response is not None:
            data["response"] = self.response.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CapturedRequest":
        """Rebuild an entry from a trace file document."""
        triggered_by = data.get("triggeredBy")
        response = data.get("response")
        return cls(
            id=int(data["id"]),
            timestamp=data.get("timestamp", ""),
            url=data.get("url", ""),
            method=data.get("method", "GET"),
            headers=data.get("headers") or {},
            post_data=data.get("postData"),
            query_params=data.get("queryParams", ""),
            triggered_by=ClickContext.from_dict(triggered_by) if triggered_by else None,
            action_group=data.get("actionGroup"),
            is_billing_request=bool(data.get("isBillingRequest", False)),
            module=data.get("module"),
            plugin=data.get("plugin"),
            response=ResponseRecord.from_dict(response) if response else None,
        )


__all__ = ["BodyKind", "ClickContext", "ResponseRecord", "CapturedRequest"]
