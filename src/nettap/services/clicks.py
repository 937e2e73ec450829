"""Click context tracking.

Holds the single "last click" slot that newly captured requests are
attributed to.

PUBLIC API:
  - ClickTracker: Last-click slot and action group label
  - action_group_label: Derive an action group label from a click
"""

import logging
import re

from nettap.events import ClickEvent
from nettap.models import ClickContext

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def action_group_label(ordinal: int, click: ClickContext) -> str:
    """Label for the batch of requests caused by one click.

    Args:
        ordinal: Ledger id the next captured request will receive.
        click: The click that opens the batch.

    Returns:
        "Click_<ordinal>_<text with whitespace runs as _>", or the tag name
        when the click carried no text.
    """
    if click.text:
        name = _WHITESPACE_RE.sub("_", click.text)
    else:
        name = click.tag_name or "unknown"
    return f"Click_{ordinal}_{name}"


class ClickTracker:
    """Single-slot tracker of the most recent click.

    No history is kept: each click replaces the slot and the label.
    """

    def __init__(self, text_limit: int = 50):
        self.text_limit = text_limit
        self.last_click: ClickContext | None = None
        self.action_group: str | None = None

    def observe(self, event: ClickEvent, next_id: int) -> ClickContext:
        """Replace the slot with a new click.

        Args:
            event: Click reported by the page.
            next_id: Id the ledger will assign to its next entry.

        Returns:
            The new ClickContext.
        """
        text = event.text[: self.text_limit] if event.text else event.text
        click = ClickContext(
            tag_name=event.tag_name,
            text=text,
            href=event.href,
            onclick=event.onclick,
            class_name=event.class_name,
            element_id=event.element_id,
            timestamp=event.timestamp,
        )
        self.last_click = click
        self.action_group = action_group_label(next_id, click)

        logger.info(f"User clicked: {click.text or click.tag_name}")
        if click.onclick:
            logger.info(f"  onclick: {click.onclick}")
        if click.href:
            logger.info(f"  href: {click.href}")

        return click

    def snapshot(self) -> tuple[ClickContext | None, str | None]:
        """Current click and label, for attaching to a new ledger entry."""
        return self.last_click, self.action_group


__all__ = ["ClickTracker", "action_group_label"]
