"""nettap - browser traffic capture with click attribution.

Attaches to Chrome over the DevTools Protocol, records requests of
interest, ties each one to the click that triggered it, writes a trace file
per exchange, and summarizes the session when interrupted.

PUBLIC API:
  - main: Entry point function for CLI
  - __version__: Package version string
"""

import logging
import sys
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nettap")
except PackageNotFoundError:
    __version__ = "0.0.0"

CLI_SUBCOMMANDS = {"capture", "report", "run-chrome"}


def main():
    """Entry point for nettap.

    Modes:
    - Subcommand (e.g., `nettap capture --url ...`): Runs CLI command
    - Interactive terminal (TTY): Starts REPL mode
    - Anything else: Shows CLI help
    """
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )

    from nettap.app import app

    if len(sys.argv) > 1 and sys.argv[1] in CLI_SUBCOMMANDS:
        app.cli()
    elif sys.stdin.isatty():
        app.run(title="nettap - browser traffic capture")
    else:
        app.cli()


__all__ = ["main", "__version__"]
