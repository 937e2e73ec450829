"""Trace persistence for captured requests.

Every ledger write lands in its own JSON file, so the capture-time snapshot
survives even when the process dies before the response arrives.

PUBLIC API:
  - TraceWriter: Writes trace files and the session summary
  - load_trace: Rebuild ledger entries from a trace directory
"""

import json
import logging
import time
from pathlib import Path

from nettap.errors import PersistenceError
from nettap.models import CapturedRequest

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.json"
TRACE_GLOB = "request-*-*-*.json"


class TraceWriter:
    """Synchronous writer for trace files.

    Attributes:
        output_dir: Directory receiving trace files and summary.json.
    """

    def __init__(self, output_dir: Path | str):
        self.output_dir = Path(output_dir)
        self.written = 0

    def ensure_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create {self.output_dir}: {e}") from e

    def _trace_path(self, entry: CapturedRequest) -> Path:
        # Capture and correlation may land in the same millisecond
        stamp = int(time.time() * 1000)
        while True:
            path = self.output_dir / f"request-{entry.id}-{entry.method}-{stamp}.json"
            if not path.exists():
                return path
            stamp += 1

    def persist(self, entry: CapturedRequest) -> Path:
        """Write the entry's current state to a new trace file.

        Returns:
            Path of the file written.

        Raises:
            PersistenceError: If the file cannot be written. Not retried.
        """
        self.ensure_dir()
        path = self._trace_path(entry)
        try:
            path.write_text(json.dumps(entry.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

        self.written += 1
        logger.debug(f"Wrote {path.name}")
        return path

    def write_summary(self, document: dict) -> Path:
        """Write summary.json, replacing any previous summary.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        self.ensure_dir()
        path = self.output_dir / SUMMARY_FILENAME
        try:
            path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

        logger.info(f"Saved summary to {path}")
        return path


def _trace_sort_key(path: Path) -> int:
    # request-<id>-<METHOD>-<ms>.json
    try:
        return int(path.stem.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


def load_trace(directory: Path | str) -> list[CapturedRequest]:
    """Rebuild ledger entries from the trace files in a directory.

    For each id the latest write wins, except that a write carrying a
    response is never replaced by one without. Unreadable files are logged
    and skipped.

    Returns:
        Entries ordered by id.
    """
    directory = Path(directory)
    entries: dict[int, CapturedRequest] = {}

    for path in sorted(directory.glob(TRACE_GLOB), key=_trace_sort_key):
        try:
            entry = CapturedRequest.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Skipping unreadable trace file {path.name}: {e}")
            continue

        current = entries.get(entry.id)
        if current is not None and current.resolved and not entry.resolved:
            continue
        entries[entry.id] = entry

    return [entries[i] for i in sorted(entries)]


__all__ = ["TraceWriter", "load_trace", "SUMMARY_FILENAME"]
