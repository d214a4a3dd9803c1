import io
import threading
from pathlib import Path

import pytest
from PIL import Image

from photo_archiver.archive.paths import PathResolver
from photo_archiver.archive.writer import ArchiveWriter
from photo_archiver.core import SyncOrchestrator
from photo_archiver.exceptions import RemoteApiError
from photo_archiver.fetching.fetcher import Fetcher
from photo_archiver.ledger import SqliteLedger
from photo_archiver.models import PhotoRef, Record
from photo_archiver.staging import StagingArea

FORM_ID = "form-123"


def make_jpeg(color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (16, 16), color).save(buf, format="JPEG")
    return buf.getvalue()


def make_record(record_id, project="1234", branch="Tampa", status="Complete",
                notes="Roof inspection", captions=None) -> Record:
    """Builds a Record the way the API would return it, photos nested in a repeatable."""
    photos = [{"photo_id": key, "caption": caption} for key, caption in (captions or {}).items()]
    payload = {
        "id": record_id,
        "status": status,
        "form_values": {
            "bfd0": project,
            "638f": notes,
            "4730": {"choice_values": [branch] if branch else [], "other_values": []},
            "9a1c": [{"id": "rep-1", "form_values": {"77aa": photos}}],
        },
    }
    return Record.from_api(payload)


class FakeFormsClient:
    """In-memory stand-in for FulcrumClient."""

    def __init__(self):
        self.records = []
        self.photos = {}           # record_id -> [access_key]
        self.media = {}            # access_key -> bytes
        self.reports = {}          # record_id -> bytes
        self.lookup_rows = []
        self.fail_media = set()
        self.fail_reports = set()
        self.fail_list_records = False
        self.fail_lookup_insert = set()
        self.media_calls = []
        self.report_calls = []
        self._lock = threading.Lock()

    def add_record(self, record, photo_keys=(), report=b"%PDF-1.4 fake report"):
        self.records.append(record)
        self.photos[record.id] = list(photo_keys)
        for key in photo_keys:
            self.media.setdefault(key, make_jpeg())
        self.reports[record.id] = report

    def list_records(self, form_id, updated_since=None):
        if self.fail_list_records:
            raise RemoteApiError("listing unavailable", status_code=503)
        return list(self.records)

    def list_photos(self, form_id, record_id):
        return [PhotoRef(access_key=k, record_id=record_id) for k in self.photos.get(record_id, [])]

    def download_photo_media(self, access_key, dest, quality="original"):
        with self._lock:
            self.media_calls.append(access_key)
        if access_key in self.fail_media:
            raise RemoteApiError(f"media {access_key} unavailable", status_code=500)
        data = self.media.get(access_key, b"")
        Path(dest).write_bytes(data)
        return len(data)

    def render_report_pdf(self, record_id, dest):
        self.report_calls.append(record_id)
        if record_id in self.fail_reports:
            raise RemoteApiError("report render failed", status_code=502)
        data = self.reports.get(record_id, b"")
        Path(dest).write_bytes(data)
        return len(data)

    def query_lookup_table(self, form_id):
        return list(self.lookup_rows)

    def insert_lookup_row(self, form_id, form_values, latitude=None, longitude=None):
        if form_values.get("2426") in self.fail_lookup_insert:
            raise RemoteApiError("insert rejected", status_code=422)
        row = {"id": f"lookup-{len(self.lookup_rows) + 1}", "form_values": dict(form_values)}
        self.lookup_rows.append(row)
        return row


@pytest.fixture
def client():
    return FakeFormsClient()


@pytest.fixture
def archive_root(tmp_path):
    """Archive with one branch holding one project folder."""
    root = tmp_path / "archive"
    (root / "Tampa" / "1234 - Main St Warehouse").mkdir(parents=True)
    (root / "Tampa" / "5678 - Harbor Office").mkdir(parents=True)
    return root


@pytest.fixture
def resolver(archive_root, tmp_path):
    return PathResolver(archive_root, tmp_path / "fallback")


@pytest.fixture
def staging(tmp_path):
    return StagingArea(tmp_path / "staging")


@pytest.fixture
def ledger(tmp_path):
    led = SqliteLedger(tmp_path / "ledger.db")
    try:
        yield led
    finally:
        led.close()


@pytest.fixture
def orchestrator(client, ledger, resolver, staging):
    return SyncOrchestrator(
        client=client,
        form_id=FORM_ID,
        ledger=ledger,
        resolver=resolver,
        writer=ArchiveWriter(allow_duplicates=True),
        fetcher=Fetcher(client, FORM_ID, staging, max_workers=3),
        staging=staging,
        progress=False,
    )


@pytest.fixture
def photos_dir(archive_root):
    return archive_root / "Tampa" / "1234 - Main St Warehouse" / "Field Docs" / "Photos"
