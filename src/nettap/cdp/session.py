"""Minimal CDP session - connection, send/execute, and an event queue.

WebSocketApp handles the WebSocket on its own thread. That thread only
resolves command futures and enqueues events; the main thread drains the
queue, so all capture state lives on one thread.
"""

import json
import logging
import queue
import threading
from concurrent.futures import Future, TimeoutError
from typing import Any

import httpx
import websocket

from nettap.errors import BrowserConnectionError

logger = logging.getLogger(__name__)

# CDP event prefixes forwarded to the queue
_FORWARDED_DOMAINS = ("Network.", "Runtime.consoleAPICalled")


class CDPSession:
    """Minimal CDP client - connect, send, execute, drain events."""

    def __init__(self, port: int = 9222, timeout: float = 30):
        """Initialize CDP session.

        Args:
            port: Chrome debugging port
            timeout: Default timeout for execute()
        """
        self.port = port
        self.timeout = timeout

        # WebSocketApp instance
        self.ws_app: websocket.WebSocketApp | None = None
        self.ws_thread: threading.Thread | None = None

        # Connection state
        self.connected = threading.Event()
        self.page_info: dict | None = None

        # CDP request/response tracking
        self._next_id = 1
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()

        # Events in arrival order, consumed by the capture loop
        self.events: queue.Queue[dict] = queue.Queue()

    @property
    def is_connected(self) -> bool:
        return self.connected.is_set()

    def list_pages(self) -> list[dict]:
        """List available Chrome pages."""
        try:
            resp = httpx.get(f"http://localhost:{self.port}/json", timeout=2)
            resp.raise_for_status()
            pages = resp.json()
            return [p for p in pages if p.get("type") == "page" and "webSocketDebuggerUrl" in p]
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to list pages: {e}")
            return []

    def connect(self, page_index: int = 0) -> None:
        """Connect to a Chrome page. Just establishes connection, no auto-enable.

        Raises:
            BrowserConnectionError: If no page is available or the socket does not open.
        """
        if self.ws_app:
            raise BrowserConnectionError("Already connected")

        pages = self.list_pages()
        if not pages:
            raise BrowserConnectionError(f"No pages available on port {self.port}")

        if page_index >= len(pages):
            raise BrowserConnectionError(f"Page {page_index} out of range ({len(pages)} pages)")

        page = pages[page_index]
        ws_url = page["webSocketDebuggerUrl"]
        self.page_info = page

        self.ws_app = websocket.WebSocketApp(
            ws_url, on_open=self._on_open, on_message=self._on_message, on_error=self._on_error, on_close=self._on_close
        )

        self.ws_thread = threading.Thread(
            target=self.ws_app.run_forever,
            kwargs={
                "ping_interval": 30,  # Ping every 30s
                "ping_timeout": 10,  # Wait 10s for pong
                "skip_utf8_validation": True,
                "suppress_origin": True,
            },
        )
        self.ws_thread.daemon = True
        self.ws_thread.start()

        if not self.connected.wait(timeout=5):
            self.disconnect()
            raise BrowserConnectionError("Failed to connect to Chrome")

    def disconnect(self) -> None:
        """Disconnect from Chrome."""
        if self.ws_app:
            self.ws_app.close()
            self.ws_app = None

        if self.ws_thread and self.ws_thread.is_alive():
            self.ws_thread.join(timeout=2)
            self.ws_thread = None

        self.connected.clear()
        self.page_info = None

    def send(self, method: str, params: dict | None = None) -> Future:
        """Send CDP command asynchronously.

        Args:
            method: CDP method (e.g. "Page.navigate")
            params: Optional parameters

        Returns:
            Future that will contain the 'result' field from CDP response
        """
        if not self.ws_app:
            raise RuntimeError("Not connected")

        with self._lock:
            msg_id = self._next_id
            self._next_id += 1

            future = Future()
            self._pending[msg_id] = future

        message = {"id": msg_id, "method": method}
        if params:
            message["params"] = params

        self.ws_app.send(json.dumps(message))

        return future

    def execute(self, method: str, params: dict | None = None, timeout: float | None = None) -> Any:
        """Send CDP command synchronously.

        Blocks until response received or timeout.

        Raises:
            RuntimeError: If CDP returns an error.
            TimeoutError: If no response arrives in time.
        """
        future = self.send(method, params)

        try:
            return future.result(timeout=timeout or self.timeout)
        except TimeoutError:
            with self._lock:
                for msg_id, f in list(self._pending.items()):
                    if f is future:
                        self._pending.pop(msg_id, None)
                        break
            raise TimeoutError(f"Command {method} timed out")

    def next_event(self, timeout: float = 0.5) -> dict | None:
        """Pop the oldest queued event, or None after ``timeout`` seconds."""
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def _on_open(self, ws):
        """WebSocket opened."""
        logger.info("WebSocket connected")
        self.connected.set()

    def _on_message(self, ws, message):
        """Resolve command futures, enqueue events."""
        try:
            data = json.loads(message)
        except ValueError as e:
            logger.error(f"Unparseable CDP message: {e}")
            return

        if "id" in data:
            with self._lock:
                future = self._pending.pop(data["id"], None)

            if future:
                if "error" in data:
                    future.set_exception(RuntimeError(data["error"]))
                else:
                    future.set_result(data.get("result", {}))

        elif data.get("method", "").startswith(_FORWARDED_DOMAINS):
            self.events.put(data)

    def _on_error(self, ws, error):
        """WebSocket error."""
        logger.error(f"WebSocket error: {error}")

    def _on_close(self, ws, code, reason):
        """WebSocket closed."""
        logger.info(f"WebSocket closed: {code} {reason}")
        self.connected.clear()

        # Fail pending commands
        with self._lock:
            for future in self._pending.values():
                future.set_exception(RuntimeError("Connection closed"))
            self._pending.clear()


__all__ = ["CDPSession"]
