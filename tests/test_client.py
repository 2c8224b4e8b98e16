"""Tests for the REDCap API client and token auth."""

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from unittest.mock import MagicMock

import pytest
import requests

from ctrdata.auth.api_key import TokenAuth
from ctrdata.clients.base import RequestMetrics
from ctrdata.clients.redcap_client import RedcapApiError, RedcapClient
from ctrdata.config import RedcapConfig


def _response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = {}
    response.raw.retries = None
    response.content = b"payload"
    response.json.return_value = payload
    return response


@pytest.fixture
def client():
    """RedcapClient whose HTTP session is mocked."""
    config = RedcapConfig(
        api_url="https://redcap.example.org/api/",
        api_token="SECRET",
        block_size=2,
    )
    redcap = RedcapClient(config)
    redcap.session.request = MagicMock(return_value=_response([]))
    return redcap


def _sent_form(client, call_index=-1):
    return client.session.request.call_args_list[call_index].kwargs["data"]


class TestTokenAuth:
    """Tests for TokenAuth."""

    def test_form_field(self):
        """Test the token is a form field named "token"."""
        assert TokenAuth("abc").get_auth_form() == {"token": "abc"}

    def test_custom_field_name(self):
        """Test the form field name can be changed."""
        assert TokenAuth("abc", key_name="api_token").get_auth_form() == {"api_token": "abc"}


class TestRequestMetrics:
    """Tests for request metrics."""

    def test_records_requests(self):
        """Test counters and averages."""
        metrics = RequestMetrics()
        metrics.record_request(10.0, success=True)
        metrics.record_request(30.0, success=False)
        metrics.record_retry()

        summary = metrics.to_dict()
        assert summary["total_requests"] == 2
        assert summary["failed_requests"] == 1
        assert summary["total_retries"] == 1
        assert summary["avg_duration_ms"] == 20.0


class TestRedcapClient:
    """Tests for RedcapClient."""

    def test_base_url_trailing_slash(self, client):
        """Test the API URL is normalized."""
        assert client.base_url == "https://redcap.example.org/api"

    def test_export_records_form(self, client):
        """Test a record export posts the expected form fields."""
        client.session.request.return_value = _response([{"record_id": "1"}])

        records = client.export_records(fields=["record_id", "age"], records=[1, 2])

        assert records == [{"record_id": "1"}]
        call = client.session.request.call_args
        assert call.kwargs["method"] == "POST"
        assert call.kwargs["url"] == "https://redcap.example.org/api"

        form = _sent_form(client)
        assert form["token"] == "SECRET"
        assert form["content"] == "record"
        assert form["format"] == "json"
        assert form["type"] == "flat"
        assert form["fields"] == "record_id,age"
        assert form["records"] == "1,2"
        assert form["rawOrLabel"] == "raw"
        assert form["exportSurveyFields"] == "true"
        assert form["exportCheckboxLabel"] == "false"
        assert "filterLogic" not in form

    def test_export_all_records_omits_selectors(self, client):
        """Test fields/records are not sent when exporting everything."""
        client.export_records()

        form = _sent_form(client)
        assert "fields" not in form
        assert "records" not in form

    def test_error_payload_raises(self, client):
        """Test REDCap error payloads become RedcapApiError."""
        client.session.request.return_value = _response({"error": "You do not have permissions"})

        with pytest.raises(RedcapApiError) as exc_info:
            client.export_metadata()

        assert exc_info.value.content == "metadata"
        assert "permissions" in str(exc_info.value)

    def test_http_error_propagates(self, client):
        """Test HTTP failures propagate and count as failed requests."""
        response = _response(None, status_code=403)
        response.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
        client.session.request.return_value = response

        with pytest.raises(requests.HTTPError):
            client.export_records()

        assert client.metrics.failed_requests == 1

    def test_blocks_of_record_ids(self, client):
        """Test ids are exported in blocks of config.block_size."""
        client.session.request.side_effect = [
            _response([{"record_id": "1"}, {"record_id": "2"}]),
            _response([{"record_id": "3"}, {"record_id": "4"}]),
            _response([{"record_id": "5"}]),
        ]

        records = client.export_records_in_blocks(["1", "2", "3", "4", "5"])

        assert [r["record_id"] for r in records] == ["1", "2", "3", "4", "5"]
        assert client.session.request.call_count == 3
        assert [_sent_form(client, i)["records"] for i in range(3)] == ["1,2", "3,4", "5"]

    def test_blocks_forward_export_options(self, client):
        """Test block exports keep the other export options."""
        client.export_records_in_blocks(["1"], block_size=10, raw_or_label="label")
        assert _sent_form(client)["rawOrLabel"] == "label"

    def test_export_field_names(self, client):
        """Test data-dictionary names are filtered by regex."""
        client.session.request.return_value = _response([
            {"field_name": "record_id"},
            {"field_name": "intake_timestamp_arch"},
            {"field_name": "followup_timestamp_arch"},
        ])

        assert client.export_field_names("_arch$") == [
            "intake_timestamp_arch",
            "followup_timestamp_arch",
        ]

    def test_export_logs(self, client):
        """Test log exports send the log window."""
        client.export_logs(log_type="record", begin_time="2024-01-01 00:00:00")

        form = _sent_form(client)
        assert form["content"] == "log"
        assert form["logtype"] == "record"
        assert form["beginTime"] == "2024-01-01 00:00:00"

    def test_timestamp_fields(self, client):
        """Test timestamp fields are read from a sample record."""
        client.session.request.return_value = _response([{
            "record_id": "1",
            "intake_timestamp": "2024-01-01 00:00:00",
            "intake_timestamp_arch": "",
            "age": "40",
        }])

        assert client.timestamp_fields() == ["intake_timestamp"]
        assert _sent_form(client)["records"] == "1"

    def test_timestamp_fields_missing_sample(self, client):
        """Test an unknown sample record yields no fields."""
        assert client.timestamp_fields(record_id=999) == []



class _ScriptedHandler(BaseHTTPRequestHandler):
    """Answers each POST with the next (status, body) of the server script."""

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.server.hits += 1
        script = self.server.script
        status, body = script.pop(0) if len(script) > 1 else script[0]

        payload = json.dumps(body).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        if status == 429:
            self.send_header("Retry-After", "0")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def redcap_server():
    """Local HTTP server replaying a scripted list of answers."""
    server = HTTPServer(("127.0.0.1", 0), _ScriptedHandler)
    server.hits = 0
    server.script = [(200, [])]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def live_client(redcap_server):
    """RedcapClient going through the real session adapter."""
    host, port = redcap_server.server_address
    config = RedcapConfig(
        api_url=f"http://{host}:{port}/api/",
        api_token="SECRET",
        max_retries=2,
        backoff_factor=0,
    )
    return RedcapClient(config)


class TestAdapterRetries:
    """Tests for retries performed by the session's urllib3 adapter."""

    def test_rate_limited_then_success(self, live_client, redcap_server):
        """Test 429 answers are retried and counted."""
        redcap_server.script = [
            (429, {"error": "rate limited"}),
            (429, {"error": "rate limited"}),
            (200, [{"record_id": "1"}]),
        ]

        assert live_client.export_records() == [{"record_id": "1"}]
        assert redcap_server.hits == 3
        assert live_client.metrics.total_retries == 2
        assert live_client.metrics.successful_requests == 1

    def test_retries_exhausted(self, live_client, redcap_server):
        """Test a server that keeps rate limiting fails after max_retries."""
        redcap_server.script = [(429, {"error": "rate limited"})]

        with pytest.raises(requests.exceptions.RetryError):
            live_client.export_records()

        assert redcap_server.hits == 3
        assert live_client.metrics.total_retries == 2
        assert live_client.metrics.failed_requests == 1

    def test_no_retry_on_success(self, live_client, redcap_server):
        """Test a first-time answer records no retries."""
        assert live_client.export_records() == []
        assert live_client.metrics.total_retries == 0
