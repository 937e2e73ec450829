"""nettap capture services.

PUBLIC API:
  - CaptureService: Session object owning all capture state
  - SessionState: running / terminated
  - TrafficClassifier: Request acceptance and URL tags
  - ClickTracker: Last-click slot
  - RequestLedger: Append-only captured requests
  - ResponseCorrelator: Response to ledger entry matching
  - TraceWriter: Trace and summary files
  - finalize: Aggregate a ledger into a Report
"""

from nettap.services.classifier import TrafficClassifier
from nettap.services.clicks import ClickTracker
from nettap.services.correlator import ResponseCorrelator
from nettap.services.ledger import RequestLedger
from nettap.services.main import CaptureService, SessionState
from nettap.services.persistence import TraceWriter
from nettap.services.report import Report, finalize

__all__ = [
    "CaptureService",
    "SessionState",
    "TrafficClassifier",
    "ClickTracker",
    "RequestLedger",
    "ResponseCorrelator",
    "TraceWriter",
    "Report",
    "finalize",
]
