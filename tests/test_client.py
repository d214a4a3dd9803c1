from datetime import datetime, timezone

import pytest
import requests

from photo_archiver.exceptions import RemoteApiError
from photo_archiver.remote.client import FulcrumClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body=b""):
        self.status_code = status_code
        self._payload = payload
        self._body = body
        self.text = str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._next()

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self._next()

    def _next(self):
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def _client(session, **kwargs):
    return FulcrumClient("tok", base_url="https://api.example.test/api/v2", session=session, **kwargs)


def test_list_records_paginates_and_parses():
    session = FakeSession([
        FakeResponse(payload={"records": [{"id": "r1", "status": "Complete",
                                           "form_values": {"bfd0": "1234", "4730": {"choice_values": ["Tampa"]}}}],
                              "total_pages": 2}),
        FakeResponse(payload={"records": [{"id": "r2", "status": "Draft", "form_values": {}}],
                              "total_pages": 2}),
    ])
    since = datetime(2024, 1, 1, tzinfo=timezone.utc)

    records = _client(session).list_records("form-1", updated_since=since)

    assert [r.id for r in records] == ["r1", "r2"]
    assert records[0].branch == "Tampa"
    assert records[0].project_number == "1234"
    assert records[1].branch is None

    method, url, kwargs = session.calls[0]
    assert url.endswith("/records.json")
    assert kwargs["params"]["updated_since"] == int(since.timestamp())
    assert kwargs["headers"]["X-ApiToken"] == "tok"
    assert session.calls[1][2]["params"]["page"] == 2

def test_list_photos():
    session = FakeSession([FakeResponse(payload={"photos": [{"access_key": "a1"}, {"access_key": "a2"}]})])
    photos = _client(session).list_photos("form-1", "r1")
    assert [p.access_key for p in photos] == ["a1", "a2"]
    assert all(p.record_id == "r1" for p in photos)

def test_http_error_maps_to_remote_api_error():
    session = FakeSession([FakeResponse(status_code=401, payload={"error": "bad token"})])
    with pytest.raises(RemoteApiError) as exc:
        _client(session).list_photos("form-1", "r1")
    assert exc.value.status_code == 401

def test_transport_error_maps_to_remote_api_error():
    session = FakeSession([requests.ConnectionError("offline")])
    with pytest.raises(RemoteApiError):
        _client(session).query_lookup_table("lookup")

def test_download_photo_streams_to_file(tmp_path):
    session = FakeSession([FakeResponse(body=b"x" * 200_000)])
    dest = tmp_path / "a1.jpg"

    written = _client(session).download_photo_media("a1", dest)

    assert written == 200_000
    assert dest.stat().st_size == 200_000
    assert session.calls[0][1].endswith("/photos/a1.jpg")
    assert session.calls[0][2]["stream"] is True

def test_download_error_status(tmp_path):
    session = FakeSession([FakeResponse(status_code=404)])
    with pytest.raises(RemoteApiError):
        _client(session).download_photo_media("a1", tmp_path / "a1.jpg")

def test_render_report_uses_report_url(tmp_path):
    session = FakeSession([FakeResponse(body=b"%PDF-1.4")])
    client = _client(session, report_url="https://api.example.test/run/report-9")

    written = client.render_report_pdf("r1", tmp_path / "r.pdf")

    assert written == 8
    method, url, kwargs = session.calls[0]
    assert url == "https://api.example.test/run/report-9"
    assert kwargs["params"]["record_id"] == "r1"

def test_render_report_requires_url(tmp_path):
    with pytest.raises(RemoteApiError):
        _client(FakeSession([])).render_report_pdf("r1", tmp_path / "r.pdf")

def test_insert_lookup_row():
    session = FakeSession([FakeResponse(payload={"record": {"id": "new-1"}})])

    row = _client(session).insert_lookup_row("lookup", {"2426": "a1"}, latitude=1.0, longitude=2.0)

    assert row["id"] == "new-1"
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"]["record"]["form_values"] == {"2426": "a1"}
    assert kwargs["json"]["record"]["latitude"] == 1.0
