"""Chrome launch command and helpers for nettap.

Starts Chrome with remote debugging so capture() can attach to it.
"""

import logging
import shutil
import socket
import subprocess
import tempfile
import time
from pathlib import Path

import httpx

from nettap.app import app
from nettap.commands._builders import error_response, success_response, warning_response
from nettap.errors import BrowserConnectionError

logger = logging.getLogger(__name__)

_CHROME_EXECUTABLES = [
    "google-chrome-stable",
    "google-chrome",
    "chromium-browser",
    "chromium",
]


def is_port_in_use(port: int) -> bool:
    """Check if port is already bound."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("localhost", port)) == 0


def find_chrome() -> str | None:
    """First Chrome/Chromium executable found on PATH."""
    for name in _CHROME_EXECUTABLES:
        if shutil.which(name):
            return name
    return None


def chrome_command(
    chrome_exe: str, port: int, headless: bool = False, devtools: bool = False, window_size: str = "1920,1080"
) -> list[str]:
    """Command line for a debuggable Chrome with a throwaway profile."""
    profile = Path(tempfile.gettempdir()) / f"nettap-chrome-{port}"
    cmd = [
        chrome_exe,
        f"--remote-debugging-port={port}",
        "--remote-allow-origins=*",
        f"--user-data-dir={profile}",
        "--no-first-run",
        "--no-sandbox",
        f"--window-size={window_size}",
    ]
    if headless:
        cmd.append("--headless=new")
    elif devtools:
        cmd.append("--auto-open-devtools-for-tabs")
    return cmd


def wait_for_debugger(port: int, timeout: float = 10.0) -> None:
    """Poll /json/version until Chrome answers.

    Raises:
        BrowserConnectionError: If Chrome does not answer within ``timeout``.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            httpx.get(f"http://localhost:{port}/json/version", timeout=1).raise_for_status()
            return
        except httpx.HTTPError:
            time.sleep(0.2)
    raise BrowserConnectionError(f"Chrome debug port {port} did not respond within {timeout:.0f}s")


def launch_chrome(
    port: int, headless: bool = False, devtools: bool = False, window_size: str = "1920,1080"
) -> subprocess.Popen:
    """Start Chrome in the background and wait for its debug port.

    Raises:
        BrowserConnectionError: If Chrome is missing or never opens the port.
    """
    chrome_exe = find_chrome()
    if not chrome_exe:
        raise BrowserConnectionError("Chrome not found")

    cmd = chrome_command(chrome_exe, port, headless=headless, devtools=devtools, window_size=window_size)
    logger.info(f"Launching {chrome_exe} on port {port}")
    process = subprocess.Popen(cmd, start_new_session=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

    try:
        wait_for_debugger(port)
    except BrowserConnectionError:
        process.terminate()
        raise
    return process


@app.command(
    display="markdown",
    typer={"name": "run-chrome", "help": "Launch Chrome with debugging enabled"},
    fastmcp={"enabled": False},
)
def run_chrome(state, headless: bool = False, port: int = 9222) -> dict:
    """Launch Chrome with debugging enabled for nettap.

    Args:
        headless: Run without a window (default: False)
        port: Debugging port (default: 9222)

    Returns:
        Status message
    """
    if is_port_in_use(port):
        return error_response(
            f"Port {port} already in use",
            suggestions=[
                f"Use different port: nettap run-chrome --port {port + 1}",
                f"Or attach to it directly: nettap capture --port {port} --no-launch",
            ],
        )

    try:
        process = launch_chrome(port, headless=headless)
    except BrowserConnectionError as e:
        if "not found" in str(e):
            return error_response(
                str(e),
                suggestions=[
                    "Install google-chrome-stable: sudo apt install google-chrome-stable",
                    "Or install chromium: sudo apt install chromium-browser",
                ],
            )
        return warning_response(str(e), suggestions=[f"Verify: curl http://localhost:{port}/json"])

    return success_response(
        "Chrome launched",
        details={
            "Port": str(port),
            "PID": str(process.pid),
            "Mode": "Headless" if headless else "Windowed",
            "Next step": f"nettap capture --port {port} --no-launch",
        },
    )
