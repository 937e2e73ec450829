"""Request ledger: the ordered, append-only record of captured requests.

PUBLIC API:
  - RequestLedger: Assigns ids, attaches click context, persists entries
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator
from urllib.parse import parse_qsl, urlencode, urlsplit

from nettap.events import RequestEvent
from nettap.models import CapturedRequest, ClickContext
from nettap.services.classifier import Classification, TrafficClassifier, parse_post_data

if TYPE_CHECKING:
    from nettap.services.persistence import TraceWriter

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _query_string(url: str) -> str:
    return urlencode(parse_qsl(urlsplit(url).query, keep_blank_values=True))


class RequestLedger:
    """Append-only list of captured requests.

    Ids start at 1 and are only consumed by accepted requests, so they stay
    dense. Entries are never removed.

    Attributes:
        classifier: Decides which requests are recorded.
        writer: Receives every accepted entry before capture returns.
        highlight_modules: Modules whose capture is logged prominently.
    """

    def __init__(
        self,
        classifier: TrafficClassifier,
        writer: "TraceWriter | None" = None,
        highlight_modules: list[str] | None = None,
    ):
        self.classifier = classifier
        self.writer = writer
        self.highlight_modules = set(highlight_modules or [])
        self._entries: list[CapturedRequest] = []
        self._counter = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CapturedRequest]:
        return iter(self._entries)

    @property
    def entries(self) -> list[CapturedRequest]:
        """Copy of the entry list, oldest first."""
        return list(self._entries)

    @property
    def next_id(self) -> int:
        return self._counter + 1

    def capture(
        self,
        event: RequestEvent,
        click: ClickContext | None = None,
        action_group: str | None = None,
    ) -> CapturedRequest | None:
        """Record an outgoing request if the classifier accepts it.

        The request itself is never held back or modified.

        Args:
            event: Observed outgoing request.
            click: Click active at capture time.
            action_group: Label of the click's request batch.

        Returns:
            The new entry, or None when the request was not of interest.

        Raises:
            PersistenceError: If the capture-time trace file cannot be written.
        """
        result = self.classifier.classify(event.method, event.url, event.headers)
        if not result.accepted:
            return None

        self._counter += 1
        entry = CapturedRequest(
            id=self._counter,
            timestamp=_iso_now(),
            url=event.url,
            method=event.method,
            headers=dict(event.headers),
            post_data=event.post_data,
            query_params=_query_string(event.url),
            triggered_by=click,
            action_group=action_group,
            is_billing_request=result.is_billing,
            module=result.module,
            plugin=result.plugin,
        )
        self._entries.append(entry)
        self._log_capture(entry, result)

        if self.writer:
            self.writer.persist(entry)

        return entry

    def find_unresolved(self, url: str) -> CapturedRequest | None:
        """Oldest entry for this URL that has no response yet."""
        for entry in self._entries:
            if entry.url == url and entry.response is None:
                return entry
        return None

    def _log_capture(self, entry: CapturedRequest, result: Classification) -> None:
        if result.is_billing:
            logger.warning(f"[{entry.id}] BILLING REQUEST - {entry.method} {entry.url}")
        else:
            logger.info(f"[{entry.id}] {entry.method} captured: {entry.url}")

        if entry.module:
            logger.info(f"  module: {entry.module}  plugin: {entry.plugin or 'N/A'}")
            if entry.module in self.highlight_modules:
                logger.warning(f"  watched module {entry.module} found")

        if entry.triggered_by:
            click = entry.triggered_by
            logger.info(f"  triggered by: {click.text or click.onclick or 'Unknown'}")

        if entry.post_data:
            kind, value = parse_post_data(entry.post_data)
            if kind == "form":
                logger.info("  form data: " + ", ".join(f"{k}={v}" for k, v in value))
            elif kind == "json":
                logger.info(f"  JSON data: {value}")
            else:
                logger.info(f"  raw data: {entry.post_data[:300]}")


__all__ = ["RequestLedger"]
