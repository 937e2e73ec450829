"""Tests for CDP event assembly and the session's message routing."""

import base64
import json
from unittest.mock import MagicMock

import pytest

from nettap.cdp import CDPBodyReader, CDPSession, NetworkEventAssembler
from nettap.cdp.helpers import click_probe_js, parse_click_message
from nettap.events import ClickEvent, RequestEvent, ResponseEvent

from conftest import BASE

URL = f"{BASE}/ajax/controller.php?mod=Users"


def _request(request_id="7.1", url=URL, method="POST", **extra):
    request = {"url": url, "method": method, "headers": {"Content-Type": "application/x-www-form-urlencoded"}}
    request.update(extra)
    return {"method": "Network.requestWillBeSent", "params": {"requestId": request_id, "request": request}}


def _response(request_id="7.1", url=URL, status=200):
    return {
        "method": "Network.responseReceived",
        "params": {
            "requestId": request_id,
            "response": {"url": url, "status": status, "headers": {"content-type": "application/json"}},
        },
    }


def _console(*values):
    return {
        "method": "Runtime.consoleAPICalled",
        "params": {"type": "log", "args": [{"type": "string", "value": v} for v in values]},
    }


class TestAssembler:
    def test_request_becomes_request_event(self):
        [event] = NetworkEventAssembler().feed(_request(postData="a=1", hasPostData=True))

        assert isinstance(event, RequestEvent)
        assert event.url == URL
        assert event.method == "POST"
        assert event.post_data == "a=1"
        assert event.request_id == "7.1"
        assert event.has_post_data
        assert event.headers["Content-Type"] == "application/x-www-form-urlencoded"

    def test_response_waits_for_loading_finished(self):
        cdp = MagicMock()
        assembler = NetworkEventAssembler(cdp)

        assert assembler.feed(_response()) == []
        assert assembler.pending_count == 1

        [event] = assembler.feed({"method": "Network.loadingFinished", "params": {"requestId": "7.1"}})
        assert isinstance(event, ResponseEvent)
        assert event.status == 200
        assert isinstance(event.body, CDPBodyReader)
        assert assembler.pending_count == 0
        cdp.execute.assert_not_called()

    def test_failed_load_has_no_body(self):
        assembler = NetworkEventAssembler(MagicMock())
        assembler.feed(_response(status=500))

        [event] = assembler.feed({"method": "Network.loadingFailed", "params": {"requestId": "7.1"}})
        with pytest.raises(RuntimeError):
            event.body.text()

    def test_loading_finished_without_response_is_ignored(self):
        assembler = NetworkEventAssembler(MagicMock())
        assert assembler.feed({"method": "Network.loadingFinished", "params": {"requestId": "99"}}) == []

    def test_redirect_emits_bodiless_response_before_next_hop(self):
        event = _request(url=f"{BASE}/ajax/next.php", method="GET")
        event["params"]["redirectResponse"] = {"url": URL, "status": 302, "headers": {"Location": "/ajax/next.php"}}

        redirect, hop = NetworkEventAssembler(MagicMock()).feed(event)

        assert isinstance(redirect, ResponseEvent)
        assert redirect.url == URL
        assert redirect.status == 302
        assert isinstance(hop, RequestEvent)
        assert hop.url == f"{BASE}/ajax/next.php"

    def test_click_console_message(self):
        payload = json.dumps({"tagName": "BUTTON", "text": "Save", "id": "save-btn", "className": ""})
        [event] = NetworkEventAssembler().feed(_console("CLICKED:" + payload))

        assert event == ClickEvent(tag_name="BUTTON", text="Save", element_id="save-btn")

    def test_other_console_messages_are_ignored(self):
        assembler = NetworkEventAssembler()
        assert assembler.feed(_console("hello", "world")) == []
        assert assembler.feed(_console("CLICKED:{not json")) == []

    def test_unrelated_methods_are_ignored(self):
        assert NetworkEventAssembler().feed({"method": "Page.frameNavigated", "params": {}}) == []


class TestClickMessage:
    def test_non_object_payload(self):
        assert parse_click_message("CLICKED:[1, 2]") is None

    def test_object_valued_href_is_dropped(self):
        # SVG anchors expose href as an SVGAnimatedString
        event = parse_click_message('CLICKED:{"tagName": "a", "href": {"baseVal": "#x"}}')
        assert event.tag_name == "a"
        assert event.href is None


class TestBodyReader:
    def test_plain_text_body(self):
        cdp = MagicMock()
        cdp.execute.return_value = {"body": '{"ok": 1}', "base64Encoded": False}
        reader = CDPBodyReader(cdp, "7.1")

        assert reader.text() == '{"ok": 1}'
        assert reader.buffer() == b'{"ok": 1}'
        cdp.execute.assert_called_once_with("Network.getResponseBody", {"requestId": "7.1"})

    def test_base64_utf8_body_reads_as_text(self):
        cdp = MagicMock()
        cdp.execute.return_value = {"body": base64.b64encode("тариф".encode()).decode(), "base64Encoded": True}
        assert CDPBodyReader(cdp, "7.1").text() == "тариф"

    def test_binary_body_fails_text_read(self):
        cdp = MagicMock()
        cdp.execute.return_value = {"body": base64.b64encode(b"\x89PNG\xff\xfe").decode(), "base64Encoded": True}
        reader = CDPBodyReader(cdp, "7.1")

        with pytest.raises(UnicodeDecodeError):
            reader.text()
        assert reader.buffer() == b"\x89PNG\xff\xfe"

    def test_protocol_error_propagates(self):
        cdp = MagicMock()
        cdp.execute.side_effect = RuntimeError({"code": -32000, "message": "No resource with given identifier"})
        with pytest.raises(RuntimeError):
            CDPBodyReader(cdp, "7.1").text()


class TestSessionRouting:
    def test_events_are_queued_in_order(self):
        cdp = CDPSession()
        cdp._on_message(None, json.dumps({"method": "Network.requestWillBeSent", "params": {"requestId": "1"}}))
        cdp._on_message(None, json.dumps({"method": "Runtime.consoleAPICalled", "params": {}}))
        cdp._on_message(None, json.dumps({"method": "DOM.documentUpdated", "params": {}}))

        assert cdp.next_event(timeout=0)["method"] == "Network.requestWillBeSent"
        assert cdp.next_event(timeout=0)["method"] == "Runtime.consoleAPICalled"
        assert cdp.next_event(timeout=0) is None

    def test_command_results_resolve_futures(self):
        cdp = CDPSession()
        cdp.ws_app = MagicMock()

        ok = cdp.send("Network.enable")
        failed = cdp.send("Network.getResponseBody", {"requestId": "x"})
        cdp._on_message(None, json.dumps({"id": 1, "result": {}}))
        cdp._on_message(None, json.dumps({"id": 2, "error": {"code": -32000, "message": "gone"}}))

        assert ok.result(timeout=0) == {}
        with pytest.raises(RuntimeError):
            failed.result(timeout=0)

    def test_send_requires_connection(self):
        with pytest.raises(RuntimeError):
            CDPSession().send("Network.enable")

    def test_close_fails_pending_commands(self):
        cdp = CDPSession()
        cdp.ws_app = MagicMock()
        cdp.connected.set()
        pending = cdp.send("Page.navigate", {"url": BASE})

        cdp._on_close(None, 1000, "bye")

        assert not cdp.is_connected
        with pytest.raises(RuntimeError):
            pending.result(timeout=0)


class TestClickProbe:
    def test_text_limit_is_applied(self):
        source = click_probe_js(120)
        assert "substring(0, 120)" in source
        assert "__TEXT_LIMIT__" not in source

    def test_default_limit(self):
        assert "substring(0, 50)" in click_probe_js()


def test_failed_body_fetch_is_not_repeated():
    cdp = MagicMock()
    cdp.execute.side_effect = TimeoutError("Command Network.getResponseBody timed out")
    reader = CDPBodyReader(cdp, "7.1")

    with pytest.raises(TimeoutError):
        reader.text()
    with pytest.raises(TimeoutError):
        reader.buffer()
    cdp.execute.assert_called_once()


def test_page_events_are_not_queued():
    cdp = CDPSession()
    cdp._on_message(None, json.dumps({"method": "Page.frameNavigated", "params": {}}))
    assert cdp.next_event(timeout=0) is None
