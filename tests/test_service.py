"""End-to-end tests for the capture service."""

import json
from unittest.mock import MagicMock

import pytest

from nettap.cdp import NetworkEventAssembler
from nettap.errors import PersistenceError
from nettap.events import ClickEvent, Interrupt, RequestEvent, ResponseEvent, StaticBody
from nettap.services import CaptureService, SessionState

from conftest import BASE, trace_files

TARIFF_URL = f"{BASE}/ajax/controller.php?mod=BillingTariff&plugin=activate"


def test_billing_scenario(service, config):
    service.handle(ClickEvent(tag_name="BUTTON", text="Activate 1 month"))
    service.handle(RequestEvent(url=TARIFF_URL, method="POST", post_data="user_id=46259&period=1"))
    service.handle(RequestEvent(url=f"{BASE}/static/app.js", method="GET"))
    service.handle(
        ResponseEvent(
            url=TARIFF_URL,
            status=200,
            headers={"content-type": "application/json"},
            body=StaticBody('{"success":true}'),
        )
    )
    service.handle(ResponseEvent(url=f"{BASE}/static/app.js", status=200, body=StaticBody("var x;")))

    report = service.handle(Interrupt())

    [entry] = service.ledger.entries
    assert entry.is_billing_request
    assert entry.module == "BillingTariff"
    assert entry.plugin == "activate"
    assert entry.action_group == "Click_1_Activate_1_month"
    assert entry.response.body == '{"success":true}'
    assert report.statistics["billingRequests"] == 1
    assert report.statistics["totalRequests"] == 1
    assert report.statistics["successfulRequests"] == 1

    summary = json.loads((config.output_path / "summary.json").read_text())
    assert summary["statistics"]["billingRequests"] == 1
    assert summary["allRequests"][0]["response"]["type"] == "text"
    assert len(trace_files(config.output_path)) == 2


def test_unresolved_entry_survives_termination(service, config):
    service.handle(RequestEvent(url=f"{BASE}/api/users"))
    report = service.terminate()

    [request] = report.document["allRequests"]
    assert "response" not in request
    assert report.statistics["successfulRequests"] == 0
    assert len(trace_files(config.output_path)) == 1


def test_attribution_is_fixed_at_capture_time(service):
    service.handle(ClickEvent(tag_name="A", text="Users"))
    entry = service.handle(RequestEvent(url=f"{BASE}/ajax/users.php"))
    service.handle(ClickEvent(tag_name="BUTTON", text="Tariffs"))
    later = service.handle(RequestEvent(url=f"{BASE}/ajax/tariffs.php"))
    service.handle(ResponseEvent(url=f"{BASE}/ajax/users.php", status=200, body=StaticBody("[]")))

    assert entry.action_group == "Click_1_Users"
    assert entry.triggered_by.text == "Users"
    assert later.action_group == "Click_2_Tariffs"


def test_requests_before_any_click_are_unattributed(service):
    entry = service.handle(RequestEvent(url=f"{BASE}/api/boot"))
    assert entry.triggered_by is None
    assert entry.action_group is None


def test_label_uses_next_ledger_id(service):
    service.handle(RequestEvent(url=f"{BASE}/api/one"))
    service.handle(RequestEvent(url=f"{BASE}/api/two"))
    service.handle(ClickEvent(tag_name="SPAN"))
    assert service.tracker.action_group == "Click_3_SPAN"


def test_termination_is_one_way(service):
    first = service.handle(Interrupt())
    assert service.state is SessionState.TERMINATED

    assert service.handle(RequestEvent(url=f"{BASE}/api/late")) is None
    assert service.handle(Interrupt()) is None
    assert service.terminate() is first
    assert len(service.ledger) == 0


def test_persistence_failure_is_not_masked(tmp_path):
    from nettap.config import CaptureConfig

    blocker = tmp_path / "blocker"
    blocker.write_text("")
    service = CaptureService(CaptureConfig(output_dir=str(blocker)))

    with pytest.raises(PersistenceError):
        service.handle(RequestEvent(url=f"{BASE}/api/users"))


def test_missing_post_data_is_fetched(service):
    cdp = MagicMock()
    cdp.execute.return_value = {"postData": "period=12"}
    service.cdp = cdp

    entry = service.handle(RequestEvent(url=f"{BASE}/save", method="POST", request_id="41.7", has_post_data=True))

    cdp.execute.assert_called_once_with("Network.getRequestPostData", {"requestId": "41.7"})
    assert entry.post_data == "period=12"


def test_post_data_fetch_failure_is_tolerated(service):
    cdp = MagicMock()
    cdp.execute.side_effect = RuntimeError({"code": -32000, "message": "No post data available"})
    service.cdp = cdp

    entry = service.handle(RequestEvent(url=f"{BASE}/save", method="POST", request_id="41.7", has_post_data=True))
    assert entry.post_data is None


def _cdp_feed(events, then=KeyboardInterrupt):
    cdp = MagicMock()
    cdp.is_connected = True
    cdp.next_event.side_effect = list(events) + [then]
    cdp.execute.return_value = {"body": '{"success": true}', "base64Encoded": False}
    return cdp


def test_run_drains_cdp_events_until_interrupt(service, config):
    cdp = _cdp_feed(
        [
            {
                "method": "Runtime.consoleAPICalled",
                "params": {"args": [{"type": "string", "value": 'CLICKED:{"tagName": "BUTTON", "text": "Activate"}'}]},
            },
            {
                "method": "Network.requestWillBeSent",
                "params": {"requestId": "1", "request": {"url": TARIFF_URL, "method": "POST", "headers": {}}},
            },
            None,
            {
                "method": "Network.responseReceived",
                "params": {"requestId": "1", "response": {"url": TARIFF_URL, "status": 200, "headers": {}}},
            },
            {"method": "Network.loadingFinished", "params": {"requestId": "1"}},
        ]
    )

    report = service.run(cdp, NetworkEventAssembler(cdp), poll=0)

    assert service.state is SessionState.TERMINATED
    assert report.statistics["totalRequests"] == 1
    [entry] = service.ledger.entries
    assert entry.action_group == "Click_1_Activate"
    assert entry.response.body == '{"success": true}'
    assert (config.output_path / "summary.json").exists()


def test_run_terminates_when_browser_goes_away(service, config):
    cdp = MagicMock()
    cdp.is_connected = False
    cdp.next_event.return_value = None

    report = service.run(cdp, NetworkEventAssembler(cdp), poll=0)

    assert service.state is SessionState.TERMINATED
    assert report.statistics["totalRequests"] == 0
    assert (config.output_path / "summary.json").exists()


def _tariff_exchange(request_id="1"):
    return [
        {
            "method": "Network.requestWillBeSent",
            "params": {"requestId": request_id, "request": {"url": TARIFF_URL, "method": "POST", "headers": {}}},
        },
        {
            "method": "Network.responseReceived",
            "params": {
                "requestId": request_id,
                "response": {"url": TARIFF_URL, "status": 200, "headers": {"content-type": "application/json"}},
            },
        },
        {"method": "Network.loadingFinished", "params": {"requestId": request_id}},
    ]


def test_stop_during_body_read_lets_correlation_finish(service, config):
    cdp = MagicMock()
    cdp.is_connected = True
    cdp.next_event.side_effect = _tariff_exchange()

    def execute(method, params=None):
        # Signal arrives while Chrome is still sending the body
        service.request_stop("SIGTERM")
        return {"body": '{"success": true}', "base64Encoded": False}

    cdp.execute.side_effect = execute

    report = service.run(cdp, NetworkEventAssembler(cdp), poll=0)

    [entry] = service.ledger.entries
    assert entry.response is not None
    assert entry.response.body == '{"success": true}'
    assert report.statistics["successfulRequests"] == 1
    assert len(trace_files(config.output_path)) == 2
    assert cdp.next_event.call_count == 3
    assert service.state is SessionState.TERMINATED


def test_stop_request_is_honoured_before_next_event(service):
    cdp = MagicMock()
    cdp.is_connected = True
    service.request_stop("SIGINT")

    report = service.run(cdp, NetworkEventAssembler(cdp), poll=0)

    cdp.next_event.assert_not_called()
    assert report.statistics["totalRequests"] == 0
    assert service.state is SessionState.TERMINATED


def test_failed_summary_write_can_be_retried(tmp_path):
    from nettap.config import CaptureConfig

    out = tmp_path / "out"
    out.write_text("")
    service = CaptureService(CaptureConfig(output_dir=str(out)))

    with pytest.raises(PersistenceError):
        service.terminate()
    assert service.report is None
    assert service.summary_path is None

    out.unlink()
    report = service.terminate()

    assert service.report is report
    assert service.summary_path == out / "summary.json"
    assert service.summary_path.exists()
