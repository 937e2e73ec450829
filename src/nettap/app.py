"""Main application entry point for nettap.

Provides the REPL and CLI for capture sessions. Built on ReplKit2; every
command receives the shared NetTapState.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from replkit2 import App

if TYPE_CHECKING:
    from nettap.services import CaptureService


@dataclass
class NetTapState:
    """Application state for nettap.

    Attributes:
        service: Most recent capture session, kept for inspection in the REPL.
    """

    service: "CaptureService | None" = None


# Must be created before command imports for decorator registration
app = App(
    "nettap",
    NetTapState,
    uri_scheme="nettap",
    fastmcp={
        "description": "Browser traffic capture with click attribution",
        "tags": {"browser", "network", "capture", "cdp"},
    },
)


# Command imports trigger @app.command decorator registration
from nettap.commands import capture  # noqa: E402, F401
from nettap.commands import launch  # noqa: E402, F401
