"""Helper functions for CDP event processing.

Turns raw CDP events into the typed events the capture service consumes.
A network exchange spans several CDP events that need correlation by the
browser's requestId:
- Network.requestWillBeSent: request details (and a redirect's response)
- Network.responseReceived: status and headers
- Network.loadingFinished: body is now readable
- Network.loadingFailed: no body will follow
"""

import base64
import json
import logging
from typing import TYPE_CHECKING

from nettap.events import ClickEvent, Event, RequestEvent, ResponseEvent, StaticBody

if TYPE_CHECKING:
    from nettap.cdp.session import CDPSession

logger = logging.getLogger(__name__)

CLICK_PREFIX = "CLICKED:"

# Injected into every document; reports clicks as console messages
_CLICK_PROBE_TEMPLATE = """
(() => {
  if (window.__nettapClickProbe) return;
  window.__nettapClickProbe = true;
  window.addEventListener('click', (e) => {
    const t = e.target;
    const info = {
      tagName: t.tagName || null,
      text: t.innerText ? t.innerText.substring(0, __TEXT_LIMIT__) : null,
      href: typeof t.href === 'string' ? t.href : null,
      onclick: t.getAttribute ? t.getAttribute('onclick') : null,
      className: typeof t.className === 'string' ? t.className : null,
      id: t.id || null,
      timestamp: new Date().toISOString()
    };
    console.log('CLICKED:' + JSON.stringify(info));
  }, true);
})();
"""


def click_probe_js(text_limit: int = 50) -> str:
    """Click probe source that keeps at most ``text_limit`` characters of text."""
    return _CLICK_PROBE_TEMPLATE.replace("__TEXT_LIMIT__", str(int(text_limit)))


class CDPBodyReader:
    """BodyReader backed by Network.getResponseBody.

    The CDP call is made at most once per reader, whether it succeeds or
    fails. Errors from Chrome (body evicted, no body for this resource)
    propagate to the caller on every read.
    """

    def __init__(self, cdp: "CDPSession", request_id: str):
        self.cdp = cdp
        self.request_id = request_id
        self._result: dict | None = None
        self._error: Exception | None = None

    def _fetch(self) -> dict:
        if self._error is not None:
            raise self._error
        if self._result is None:
            try:
                self._result = self.cdp.execute("Network.getResponseBody", {"requestId": self.request_id})
            except (RuntimeError, TimeoutError) as e:
                self._error = e
                raise
        return self._result

    def text(self) -> str:
        result = self._fetch()
        body = result.get("body", "")
        if result.get("base64Encoded"):
            # Strict decode: non-UTF-8 payloads fall through to buffer()
            return base64.b64decode(body).decode("utf-8")
        return body

    def buffer(self) -> bytes:
        result = self._fetch()
        body = result.get("body", "")
        if result.get("base64Encoded"):
            return base64.b64decode(body)
        return body.encode("utf-8")


def _console_text(args: list[dict]) -> str:
    """Join console arguments the way devtools displays them."""
    parts = []
    for arg in args:
        if "value" in arg:
            parts.append(str(arg["value"]))
        elif "description" in arg:
            parts.append(arg["description"])
        else:
            parts.append(f"[{arg.get('type', 'unknown')}]")
    return " ".join(parts)


def parse_click_message(text: str) -> ClickEvent | None:
    """Parse a click probe console message.

    Returns:
        ClickEvent, or None when the message is not a well-formed click report.
    """
    if not text.startswith(CLICK_PREFIX):
        return None
    try:
        payload = json.loads(text[len(CLICK_PREFIX) :])
    except ValueError:
        logger.debug(f"Ignoring malformed click report: {text[:100]}")
        return None
    if not isinstance(payload, dict):
        return None
    return ClickEvent.from_probe(payload)


def _headers(raw: dict | None) -> dict[str, str]:
    return {str(k): str(v) for k, v in (raw or {}).items()}


class NetworkEventAssembler:
    """Stateful translator from raw CDP events to capture events.

    Responses are held back until loading finishes so the body can be read.

    Attributes:
        cdp: Session used by body readers. None yields bodiless responses.
    """

    def __init__(self, cdp: "CDPSession | None" = None):
        self.cdp = cdp
        self._responses: dict[str, dict] = {}  # requestId -> response params

    @property
    def pending_count(self) -> int:
        return len(self._responses)

    def feed(self, event: dict) -> list[Event]:
        """Translate one CDP event.

        Returns:
            Zero or more capture events, in the order they should be handled.
        """
        method = event.get("method", "")
        params = event.get("params", {})

        if method == "Network.requestWillBeSent":
            return self._request_will_be_sent(params)

        elif method == "Network.responseReceived":
            request_id = params.get("requestId")
            if request_id:
                self._responses[request_id] = params.get("response", {})
            return []

        elif method == "Network.loadingFinished":
            return self._finish(params.get("requestId"), failed=False)

        elif method == "Network.loadingFailed":
            return self._finish(params.get("requestId"), failed=True)

        elif method == "Runtime.consoleAPICalled":
            click = parse_click_message(_console_text(params.get("args", [])))
            return [click] if click else []

        return []

    def _request_will_be_sent(self, params: dict) -> list[Event]:
        events: list[Event] = []
        request_id = params.get("requestId")

        # Redirect hops reuse the requestId; the hop's response has no body
        redirect = params.get("redirectResponse")
        if redirect:
            self._responses.pop(request_id, None)
            events.append(
                ResponseEvent(
                    url=redirect.get("url", ""),
                    status=int(redirect.get("status", 0)),
                    headers=_headers(redirect.get("headers")),
                    body=StaticBody(None),
                    request_id=request_id,
                )
            )

        request = params.get("request", {})
        events.append(
            RequestEvent(
                url=request.get("url", ""),
                method=request.get("method", "GET"),
                headers=_headers(request.get("headers")),
                post_data=request.get("postData"),
                request_id=request_id,
                has_post_data=bool(request.get("hasPostData", False)),
            )
        )
        return events

    def _finish(self, request_id: str | None, failed: bool) -> list[Event]:
        if not request_id:
            return []
        response = self._responses.pop(request_id, None)
        if response is None:
            return []

        if failed or self.cdp is None:
            body = StaticBody(None)
        else:
            body = CDPBodyReader(self.cdp, request_id)

        return [
            ResponseEvent(
                url=response.get("url", ""),
                status=int(response.get("status", 0)),
                headers=_headers(response.get("headers")),
                body=body,
                request_id=request_id,
            )
        ]


__all__ = ["NetworkEventAssembler", "CDPBodyReader", "parse_click_message", "click_probe_js", "CLICK_PREFIX"]
