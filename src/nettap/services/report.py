"""Aggregation and reporting over the final ledger.

finalize() has no input besides the ledger, the config and the finish
time, so running it twice over the same ledger gives the same statistics.

PUBLIC API:
  - finalize: Build the session Report from ledger entries
  - Report: Summary document plus grouped views
  - EndpointPattern: Distinct billing endpoint shape
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from replkit2.textkit import markdown

from nettap.config import CaptureConfig
from nettap.models import CapturedRequest

_CLICK_ACTIONS_SHOWN = 5


@dataclass
class EndpointPattern:
    """Billing requests sharing (method, module, plugin).

    Attributes:
        example: First entry seen with this shape.
        count: Number of entries with this shape.
        statuses: Distinct response statuses, first-seen order.
    """

    method: str
    module: str
    plugin: str
    example: CapturedRequest
    count: int = 0
    statuses: list[int] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.method} {self.module}/{self.plugin}"


@dataclass
class Report:
    """Result of finalize().

    Attributes:
        document: The summary.json document.
        module_groups: Entries per module tag, first-seen order.
        click_groups: Entries per click text (tag name for textless clicks),
            first-seen order.
        endpoint_patterns: Distinct billing endpoint shapes.
        highlight_modules: Modules flagged in the rendered summary.
    """

    document: dict[str, Any]
    module_groups: dict[str, list[CapturedRequest]]
    click_groups: dict[str, list[CapturedRequest]]
    endpoint_patterns: list[EndpointPattern]
    highlight_modules: list[str] = field(default_factory=list)

    @property
    def statistics(self) -> dict[str, Any]:
        return self.document["statistics"]

    def render(self, summary_path: str | None = None) -> dict:
        """Human-readable summary as a markdown element tree."""
        stats = self.statistics
        builder = markdown().heading("Capture Summary", level=2)

        builder.list(
            [
                f"Total requests: {stats['totalRequests']}",
                f"Billing requests: {stats['billingRequests']}",
                f"AJAX requests: {stats['ajaxRequests']}",
                f"POST requests: {stats['postRequests']}",
                f"Successful (2xx): {stats['successfulRequests']}",
            ]
        )

        if self.module_groups:
            builder.heading("Modules", level=3)
            items = []
            for module, entries in self.module_groups.items():
                marker = " **(watched)**" if module in self.highlight_modules else ""
                line = f"{module}: {len(entries)} requests{marker}"
                plugins = list(dict.fromkeys(e.plugin for e in entries if e.plugin))
                if plugins:
                    line += f" - plugins: {', '.join(plugins)}"
                items.append(line)
            builder.list(items)

        if self.endpoint_patterns:
            builder.heading("Billing Endpoints", level=3)
            for pattern in self.endpoint_patterns:
                builder.text(f"**{pattern.key}** ({pattern.count} calls)")
                details = []
                if pattern.example.post_data:
                    details.append(f"Sample POST data: `{pattern.example.post_data[:200]}`")
                if pattern.statuses:
                    details.append(f"Response statuses: {', '.join(str(s) for s in pattern.statuses)}")
                click = pattern.example.triggered_by
                if click and click.text:
                    details.append(f'Triggered by: "{click.text}"')
                if details:
                    builder.list(details)

        if self.click_groups:
            builder.heading("User Actions", level=3)
            shown = list(self.click_groups.items())[:_CLICK_ACTIONS_SHOWN]
            builder.list([f'"{text}": {len(entries)} requests' for text, entries in shown])

        if summary_path:
            builder.text(f"Full report saved to: `{summary_path}`")

        return builder.build()


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_success(entry: CapturedRequest) -> bool:
    return entry.status is not None and 200 <= entry.status < 300


def _endpoint_label(entry: CapturedRequest) -> str:
    return f"{entry.method} {entry.module or entry.url.split('?')[0]}"


def finalize(
    entries: list[CapturedRequest],
    config: CaptureConfig | None = None,
    finished_at: datetime | None = None,
) -> Report:
    """Aggregate the final ledger into a Report.

    Args:
        entries: Ledger entries, oldest first. Not modified.
        config: Session config. Supplies the AJAX markers and write methods.
        finished_at: Session end time. Defaults to now.

    Returns:
        Report whose document matches the summary.json layout.
    """
    config = config or CaptureConfig()
    finished_at = finished_at or datetime.now(timezone.utc)
    write_methods = {m.upper() for m in config.write_methods}

    billing = [e for e in entries if e.is_billing_request]
    ajax = [e for e in entries if any(marker in e.url for marker in config.ajax_markers)]
    posts = [e for e in entries if e.method.upper() in write_methods]
    successful = [e for e in entries if _is_success(e)]

    module_groups: dict[str, list[CapturedRequest]] = {}
    click_groups: dict[str, list[CapturedRequest]] = {}
    for entry in entries:
        if entry.module:
            module_groups.setdefault(entry.module, []).append(entry)
        if entry.triggered_by:
            trigger = entry.triggered_by.text or entry.triggered_by.tag_name or "unknown"
            click_groups.setdefault(trigger, []).append(entry)

    patterns: dict[tuple[str, str, str], EndpointPattern] = {}
    for entry in billing:
        key = (entry.method, entry.module or "unknown", entry.plugin or "unknown")
        pattern = patterns.get(key)
        if pattern is None:
            pattern = patterns[key] = EndpointPattern(*key, example=entry)
        pattern.count += 1
        if entry.status and entry.status not in pattern.statuses:
            pattern.statuses.append(entry.status)

    duration = 0
    if entries:
        started = _parse_timestamp(entries[0].timestamp)
        if started is not None:
            duration = max(0, int((finished_at - started).total_seconds() * 1000))

    statistics = {
        "totalRequests": len(entries),
        "billingRequests": len(billing),
        "ajaxRequests": len(ajax),
        "postRequests": len(posts),
        "successfulRequests": len(successful),
        "moduleBreakdown": [{"module": m, "count": len(group)} for m, group in module_groups.items()],
    }

    document = {
        "captureSession": {
            "timestamp": finished_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "duration": duration,
            "totalRequests": len(entries),
            "config": config.as_dict(),
        },
        "statistics": statistics,
        "billingEndpoints": [
            {
                "id": e.id,
                "url": e.url,
                "method": e.method,
                "module": e.module,
                "plugin": e.plugin,
                "postData": e.post_data,
                "responseStatus": e.status,
                "triggeredBy": (e.triggered_by.text or e.triggered_by.onclick) if e.triggered_by else None,
            }
            for e in billing
        ],
        "clickActions": [
            {
                "buttonText": text,
                "requestsTriggered": len(group),
                "endpoints": [_endpoint_label(e) for e in group],
            }
            for text, group in click_groups.items()
        ],
        "allRequests": [e.to_dict() for e in entries],
    }

    return Report(
        document=document,
        module_groups=module_groups,
        click_groups=click_groups,
        endpoint_patterns=list(patterns.values()),
        highlight_modules=list(config.highlight_modules),
    )


__all__ = ["finalize", "Report", "EndpointPattern"]
