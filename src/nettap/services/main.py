"""Capture service: the session object that owns all capture state.

Events arrive on one logical thread and are handled to completion in
arrival order. The service moves one way, from running to terminated.
"""

import dataclasses
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from nettap.config import CaptureConfig
from nettap.events import ClickEvent, Event, Interrupt, RequestEvent, ResponseEvent
from nettap.services.classifier import TrafficClassifier
from nettap.services.clicks import ClickTracker
from nettap.services.correlator import ResponseCorrelator
from nettap.services.ledger import RequestLedger
from nettap.services.persistence import TraceWriter
from nettap.services.report import Report, finalize

if TYPE_CHECKING:
    from nettap.cdp import CDPSession, NetworkEventAssembler

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Capture session lifecycle state."""

    RUNNING = "running"
    TERMINATED = "terminated"


class CaptureService:
    """Owns the ledger, click slot, correlator and trace writer of one session.

    Attributes:
        config: Effective session configuration.
        state: RUNNING until terminate() runs, then TERMINATED for good.
        tracker: Last-click slot.
        ledger: Captured requests.
        correlator: Response matcher.
        writer: Trace file writer.
        report: Final report, set by terminate().
        summary_path: Where summary.json was written.
    """

    def __init__(self, config: CaptureConfig | None = None, writer: TraceWriter | None = None):
        self.config = config or CaptureConfig()
        self.state = SessionState.RUNNING

        self.writer = writer or TraceWriter(self.config.output_path)
        self.classifier = TrafficClassifier(self.config)
        self.tracker = ClickTracker(text_limit=self.config.click_text_limit)
        self.ledger = RequestLedger(self.classifier, self.writer, self.config.highlight_modules)
        self.correlator = ResponseCorrelator(self.ledger, self.writer)

        self.cdp: "CDPSession | None" = None
        self.report: Report | None = None
        self.summary_path: Path | None = None
        self._stop: Interrupt | None = None

    @property
    def running(self) -> bool:
        return self.state is SessionState.RUNNING

    def handle(self, event: Event) -> Any:
        """Handle one event to completion.

        Returns:
            Click → ClickContext, request → CapturedRequest or None,
            response → resolved CapturedRequest or None, interrupt → Report.
            Everything after termination is ignored and returns None.

        Raises:
            PersistenceError: If a trace file write fails.
        """
        if not self.running:
            logger.debug(f"Ignoring {type(event).__name__} after termination")
            return None

        if isinstance(event, ClickEvent):
            return self.tracker.observe(event, self.ledger.next_id)

        elif isinstance(event, RequestEvent):
            click, action_group = self.tracker.snapshot()
            return self.ledger.capture(self._with_post_data(event), click, action_group)

        elif isinstance(event, ResponseEvent):
            return self.correlator.on_response(event.url, event.status, event.headers, event.body)

        elif isinstance(event, Interrupt):
            logger.info(f"Terminating capture ({event.reason})")
            return self.terminate()

        raise TypeError(f"Unknown event type: {type(event).__name__}")

    def _with_post_data(self, event: RequestEvent) -> RequestEvent:
        """Fetch a request body Chrome left out of the event."""
        if event.post_data is not None or not event.has_post_data or not self.cdp or not event.request_id:
            return event
        try:
            result = self.cdp.execute("Network.getRequestPostData", {"requestId": event.request_id})
        except (RuntimeError, TimeoutError) as e:
            logger.debug(f"No post data for {event.url}: {e}")
            return event
        return dataclasses.replace(event, post_data=result.get("postData"))

    def terminate(self, finished_at: datetime | None = None) -> Report:
        """Finalize the ledger and write summary.json. Idempotent.

        Raises:
            PersistenceError: If summary.json cannot be written.
        """
        if self.report is not None:
            return self.report

        self.state = SessionState.TERMINATED
        report = finalize(self.ledger.entries, self.config, finished_at)
        self.summary_path = self.writer.write_summary(report.document)
        self.report = report
        logger.info(f"Saved {len(self.ledger)} requests to {self.summary_path}")
        return report

    def request_stop(self, reason: str = "interrupt") -> None:
        """Ask run() to terminate once the event in hand is finished.

        Safe to call from a signal handler: nothing is raised into the
        handler that is currently running.
        """
        if self._stop is None:
            logger.info(f"Stop requested ({reason})")
            self._stop = Interrupt(reason)

    def run(self, cdp: "CDPSession", assembler: "NetworkEventAssembler", poll: float = 0.5) -> Report:
        """Drain CDP events until a stop is requested or the browser goes away.

        Stop requests are honoured between events, so a correlation or trace
        write in progress always completes. A KeyboardInterrupt while
        waiting for the next event counts as a stop request. Losing the
        browser connection also terminates, since no further events can
        arrive.

        Returns:
            The final Report.
        """
        self.cdp = cdp
        while self.running and self._stop is None:
            try:
                message = cdp.next_event(timeout=poll)
            except KeyboardInterrupt:
                self.request_stop("SIGINT")
                break

            if message is None:
                if not cdp.is_connected:
                    logger.warning("Browser connection lost")
                    break
                continue

            for event in assembler.feed(message):
                self.handle(event)

        if self._stop is not None and self.running:
            return self.handle(self._stop)
        return self.terminate()


__all__ = ["CaptureService", "SessionState"]
