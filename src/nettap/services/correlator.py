"""Response correlation.

Responses carry no ledger id. They are matched to the oldest unresolved
entry with an identical URL; method, headers and timing are ignored.

PUBLIC API:
  - ResponseCorrelator: Matches responses to ledger entries
  - read_body: Body fallback chain (text, then binary, then empty)
  - scan_billing_body: Advisory success/error keyword scan
"""

import json
import logging
from typing import TYPE_CHECKING

from nettap.events import BodyReader
from nettap.models import CapturedRequest, ResponseRecord

if TYPE_CHECKING:
    from nettap.services.ledger import RequestLedger
    from nettap.services.persistence import TraceWriter

logger = logging.getLogger(__name__)

SUCCESS_KEYWORDS = ("success", "activated", "тариф")
ERROR_KEYWORDS = ("error", "fail", "denied")

EMPTY_BODY = "[No response body available]"


def read_body(reader: BodyReader) -> tuple[str, str, int]:
    """Read a body through the text, binary, empty fallback chain.

    Returns:
        (body, kind, length). Binary bodies are replaced by a placeholder
        and only their byte length is kept.
    """
    try:
        text = reader.text()
        return text, "text", len(text)
    except Exception as e:
        logger.debug(f"Text read failed: {e}")

    try:
        data = reader.buffer()
        return f"[Binary data: {len(data)} bytes]", "binary", len(data)
    except Exception as e:
        logger.debug(f"Binary read failed: {e}")

    return EMPTY_BODY, "empty", 0


def scan_billing_body(body: str) -> set[str]:
    """Advisory keyword scan of a billing response.

    Returns:
        Subset of {"success", "error"}. Both may be present.
    """
    verdicts = set()
    if any(word in body for word in SUCCESS_KEYWORDS):
        verdicts.add("success")
    if any(word in body for word in ERROR_KEYWORDS):
        verdicts.add("error")
    return verdicts


def _content_type(headers: dict[str, str]) -> str:
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value or ""
    return ""


class ResponseCorrelator:
    """Attaches responses to ledger entries.

    Attributes:
        ledger: Ledger scanned for the matching entry.
        writer: Receives the updated entry after a match.
    """

    def __init__(self, ledger: "RequestLedger", writer: "TraceWriter | None" = None):
        self.ledger = ledger
        self.writer = writer
        self.discarded = 0

    def on_response(
        self, url: str, status: int, headers: dict[str, str], body_reader: BodyReader
    ) -> CapturedRequest | None:
        """Correlate one response.

        Returns:
            The resolved entry, or None if no unresolved entry has this URL.

        Raises:
            PersistenceError: If the correlation-time trace file cannot be written.
        """
        entry = self.ledger.find_unresolved(url)
        if entry is None:
            self.discarded += 1
            return None

        body, kind, length = read_body(body_reader)
        entry.resolve(
            ResponseRecord(
                status=status,
                headers=dict(headers),
                body=body,
                type=kind,  # type: ignore[arg-type]
                full_length=length,
            )
        )

        self._log_response(entry, headers)

        if self.writer:
            self.writer.persist(entry)

        return entry

    def _log_response(self, entry: CapturedRequest, headers: dict[str, str]) -> None:
        response = entry.response
        if response is None:
            return

        if entry.is_billing_request:
            logger.warning(f"[{entry.id}] BILLING RESPONSE: status {response.status}")
        else:
            logger.info(f"[{entry.id}] response: status {response.status}")

        body = response.body
        if "json" in _content_type(headers):
            try:
                parsed = json.loads(body)
            except ValueError:
                parsed = None
            if parsed is not None:
                logger.info(f"  JSON response: {json.dumps(parsed, ensure_ascii=False)[:500]}")
                if isinstance(parsed, dict):
                    if "success" in parsed:
                        logger.info(f"  success: {parsed['success']}")
                    message = parsed.get("error") or parsed.get("message")
                    if message:
                        logger.info(f"  message: {message}")
        elif "<html" in body or "<div" in body:
            logger.info(f"  HTML response: {body[:300].replace(chr(10), ' ')}")
        elif response.type == "text":
            logger.info(f"  text response: {body[:300]}")

        if entry.is_billing_request:
            verdicts = scan_billing_body(body)
            if "success" in verdicts:
                logger.warning(f"  [{entry.id}] possible success response")
            if "error" in verdicts:
                logger.warning(f"  [{entry.id}] error response detected")


__all__ = ["ResponseCorrelator", "read_body", "scan_billing_body"]
