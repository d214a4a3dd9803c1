import csv

import pytest

import photo_archiver.main as main_module
from conftest import make_record


@pytest.fixture
def env(monkeypatch, tmp_path, archive_root):
    values = {
        "FULCRUM_TOKEN": "tok",
        "FULCRUM_FORM_ID": "form-1",
        "FULCRUM_REPORT_URL": "https://api.example.test/run/r",
        "ARCHIVE_ROOT": str(archive_root),
        "FALLBACK_ROOT": str(tmp_path / "fallback"),
        "STAGING_DIR": str(tmp_path / "staging"),
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("FULCRUM_FORM_LOOK_UP", raising=False)
    return values


def test_main_runs_pass_with_sqlite_ledger(env, client, monkeypatch, tmp_path, photos_dir):
    client.add_record(make_record("rec-1", captions={"k1": "Gate"}), ["k1"])
    monkeypatch.setattr(main_module, "FulcrumClient", lambda *a, **k: client)
    report_csv = tmp_path / "pass.csv"

    code = main_module.main([
        "--ledger", "sqlite", "--db", str(tmp_path / "ledger.db"),
        "--report-csv", str(report_csv), "--no-progress",
    ])

    assert code == 0
    assert (photos_dir / "Gate.jpg").exists()
    with open(report_csv, encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["Status"] == "ok"

def test_main_remote_ledger_requires_lookup_form(env):
    assert main_module.main(["--no-progress"]) == 2

def test_main_missing_settings(monkeypatch):
    monkeypatch.setattr(main_module, "load_settings", lambda **kw: _raise_config())
    assert main_module.main(["--no-progress"]) == 2

def test_main_pass_abort_exit_code(env, client, monkeypatch, tmp_path):
    client.fail_list_records = True
    monkeypatch.setattr(main_module, "FulcrumClient", lambda *a, **k: client)

    code = main_module.main(["--ledger", "sqlite", "--db", str(tmp_path / "ledger.db"), "--no-progress"])
    assert code == 1


def _raise_config():
    from photo_archiver.exceptions import ConfigError
    raise ConfigError("Missing required environment variable: FULCRUM_TOKEN")

def test_main_unusable_staging_dir_exit_code(env, client, monkeypatch, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    monkeypatch.setenv("STAGING_DIR", str(blocker / "staging"))
    monkeypatch.setattr(main_module, "FulcrumClient", lambda *a, **k: client)

    code = main_module.main(["--ledger", "sqlite", "--db", str(tmp_path / "ledger.db"), "--no-progress"])
    assert code == 1
