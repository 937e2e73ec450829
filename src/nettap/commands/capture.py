"""Capture session commands.

capture() attaches to Chrome, records traffic until interrupted, and prints
the session summary. report() rebuilds that summary from trace files.
"""

import logging
import signal
from pathlib import Path

from nettap.app import app
from nettap.cdp import CDPSession, NetworkEventAssembler
from nettap.cdp.helpers import click_probe_js
from nettap.commands._builders import error_response, table_response, warning_response
from nettap.commands.launch import is_port_in_use, launch_chrome
from nettap.config import get_capture_config, load_capture_config
from nettap.errors import BrowserConnectionError, ConfigError, PersistenceError
from nettap.services import CaptureService, TraceWriter, finalize
from nettap.services.persistence import load_trace

logger = logging.getLogger(__name__)

_REQUIRED_DOMAINS = ["Network", "Page", "Runtime"]
_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_stop_handlers(service: CaptureService) -> dict:
    """Route SIGINT and SIGTERM to a stop request on the service.

    Returns:
        Previous handlers, for _restore_handlers().
    """

    def _on_signal(signum, frame):
        service.request_stop(signal.Signals(signum).name)

    return {sig: signal.signal(sig, _on_signal) for sig in _STOP_SIGNALS}


def _restore_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def _prepare_page(cdp: CDPSession, url: str | None, text_limit: int = 50) -> None:
    """Enable domains, install the click probe, and open the start URL.

    Domain and probe failures propagate. A failed navigation is logged and
    capture continues, so the user can drive the page by hand.
    """
    for domain in _REQUIRED_DOMAINS:
        cdp.execute(f"{domain}.enable")

    probe = click_probe_js(text_limit)
    cdp.execute("Page.addScriptToEvaluateOnNewDocument", {"source": probe})
    cdp.execute("Runtime.evaluate", {"expression": probe})

    if not url:
        logger.info("No start URL configured; navigate manually in the browser")
        return

    try:
        result = cdp.execute("Page.navigate", {"url": url})
        if error_text := result.get("errorText"):
            logger.error(f"Navigation to {url} failed: {error_text}")
        else:
            logger.info(f"Navigated to {url}")
    except (RuntimeError, TimeoutError) as e:
        logger.error(f"Navigation to {url} failed: {e}")


@app.command(
    display="markdown",
    typer={"help": "Capture browser traffic until interrupted (Ctrl+C)"},
    fastmcp={"enabled": False},
)
def capture(
    state,
    url: str = None,  # type: ignore[reportArgumentType]
    port: int = None,  # type: ignore[reportArgumentType]
    output: str = None,  # type: ignore[reportArgumentType]
    launch: bool = None,  # type: ignore[reportArgumentType]
    headless: bool = None,  # type: ignore[reportArgumentType]
) -> dict:
    """Capture traffic from a Chrome page until Ctrl+C.

    Each captured request is written to its own trace file as it happens.
    On interrupt, summary.json is written and a summary is shown.

    Args:
        url: Page to open once attached
        port: Chrome debugging port (default 9222)
        output: Trace directory (default ./captured-requests)
        launch: Start Chrome if nothing listens on the port (default True)
        headless: Launch Chrome headless (default False)

    Examples:
        capture(url="https://example.com/admin")
        capture(port=9223, launch=False)

    Returns:
        Session summary
    """
    try:
        config = load_capture_config(url=url, port=port, output_dir=output, launch=launch, headless=headless)
    except ConfigError as e:
        return error_response(str(e), suggestions=["Check the [capture] table in nettap.toml"])

    chrome = None
    cdp = CDPSession(port=config.port)
    try:
        if config.launch and not is_port_in_use(config.port):
            chrome = launch_chrome(
                config.port, headless=config.headless, devtools=config.devtools, window_size=config.window_size
            )
        cdp.connect()
    except BrowserConnectionError as e:
        if chrome:
            chrome.terminate()
        return error_response(
            str(e),
            suggestions=[
                f"Start Chrome first: nettap run-chrome --port {config.port}",
                f"Verify: curl http://localhost:{config.port}/json",
            ],
        )

    service = CaptureService(config)
    state.service = service
    previous_handlers = _install_stop_handlers(service)

    try:
        service.writer.ensure_dir()
        _prepare_page(cdp, config.url, config.click_text_limit)
        logger.info(f"Monitoring active, writing to {config.output_path}. Press Ctrl+C to finish.")
        report = service.run(cdp, NetworkEventAssembler(cdp))
    except PersistenceError as e:
        logger.error(str(e))
        return error_response(str(e), suggestions=[f"Check that {config.output_path} is writable"])
    except (RuntimeError, TimeoutError) as e:
        logger.error(f"Capture setup failed: {e}")
        return error_response(f"Capture setup failed: {e}")
    finally:
        _restore_handlers(previous_handlers)
        cdp.disconnect()
        if chrome:
            chrome.terminate()

    return report.render(str(service.summary_path))


@app.command(
    display="markdown",
    typer={"help": "Rebuild summary.json from a trace directory"},
    fastmcp={"enabled": False},
)
def report(state, directory: str = None) -> dict:  # type: ignore[reportArgumentType]
    """Rebuild the session summary from trace files on disk.

    Uses the latest write per request id, so an interrupted session still
    yields a summary.

    Args:
        directory: Trace directory (default: configured output_dir)

    Returns:
        Session summary
    """
    try:
        config = get_capture_config()
    except ConfigError as e:
        return error_response(str(e))

    path = Path(directory or config.output_dir)
    entries = load_trace(path)
    if not entries:
        return warning_response(f"No trace files found in {path}")

    result = finalize(entries, config)
    try:
        summary_path = TraceWriter(path).write_summary(result.document)
    except PersistenceError as e:
        return error_response(str(e))

    return result.render(str(summary_path))


@app.command(display="markdown", fastmcp={"enabled": False})
def requests(state, limit: int = 20) -> dict:
    """List requests captured by the last capture() in this REPL.

    Args:
        limit: Max rows, newest first (default 20)

    Returns:
        Table of ledger entries
    """
    service = getattr(state, "service", None)
    if service is None:
        return warning_response("No capture session yet", suggestions=["Run capture() first"])

    rows = [
        {
            "ID": str(entry.id),
            "Method": entry.method,
            "Status": str(entry.status) if entry.status is not None else "-",
            "Billing": "yes" if entry.is_billing_request else "",
            "Module": entry.module or "-",
            "Action": entry.action_group or "-",
            "URL": entry.url[:80],
        }
        for entry in reversed(service.ledger.entries[-limit:])
    ]
    return table_response(
        "Captured Requests",
        headers=["ID", "Method", "Status", "Billing", "Module", "Action", "URL"],
        rows=rows,
        summary=f"{len(service.ledger)} captured, state: {service.state.value}",
    )
