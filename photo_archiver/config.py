"""
Configuration constants and runtime settings for the photo archiver.
"""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

# --- Record Eligibility ---
COMPLETE_STATUS = "Complete"
DEFAULT_LOOKBACK_HOURS = 72

# --- Fulcrum Form Field Keys ---
# Inspection form
FIELD_PROJECT_NUMBER = "bfd0"
FIELD_VISIT_NOTES = "638f"
FIELD_BRANCH = "4730"
# Lookup (ledger) form
LOOKUP_FIELD_ACCESS_KEY = "2426"
LOOKUP_FIELD_PROJECT = "cb30"
DEFAULT_LOOKUP_LATITUDE = 27.770787
DEFAULT_LOOKUP_LONGITUDE = -82.638039

# --- Archive Layout ---
FIELD_DOCS_DIR = "Field Docs"
PHOTOS_DIR = "Photos"
FALLBACK_DIR = "RecoveredUploads"

# --- Naming ---
PLACEHOLDER_CAPTION = "Please caption this photo project"
DEFAULT_REPORT_NOTES = "Project Report"
PDF_NAME_PATTERN = "Project #{project_number}, {notes}"
MAX_FILENAME_STEM = 150
# Line breaks, path separators, Windows-reserved characters and control codes
ILLEGAL_FILENAME_CHARS = re.compile(r'[\r\n\\/<>:"|?*\x00-\x1f]+')

# --- Staging ---
PHOTO_STAGING_EXT = ".jpg"
REPORT_STAGING_PATTERN = "fulcrum_report_{record_id}.pdf"

# --- Metadata Scan ---
MAX_METADATA_DEPTH = 32

# --- Network & Performance ---
DEFAULT_BASE_URL = "https://api.fulcrumapp.com/api/v2"
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB
REQUEST_TIMEOUT_S = 60
PAGE_SIZE = 1000
DEFAULT_DOWNLOAD_WORKERS = 4


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""
    token: str
    form_id: str
    report_url: str
    archive_root: Path
    fallback_root: Path
    staging_dir: Path
    lookup_form_id: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    lookback_hours: float = DEFAULT_LOOKBACK_HOURS
    download_workers: int = DEFAULT_DOWNLOAD_WORKERS
    allow_duplicates: bool = True
    lookup_latitude: float = DEFAULT_LOOKUP_LATITUDE
    lookup_longitude: float = DEFAULT_LOOKUP_LONGITUDE


def _required(env, name: str) -> str:
    val = env.get(name)
    if not val:
        raise ConfigError(f"Missing required environment variable: {name}")
    return val


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env=None, dotenv_path: Optional[Path] = None) -> Settings:
    """
    Builds Settings from environment variables.
    Loads a .env file first unless an explicit mapping is given.
    """
    if env is None:
        load_dotenv(dotenv_path, override=False)
        env = os.environ

    archive_root = Path(_required(env, "ARCHIVE_ROOT"))
    fallback_raw = env.get("FALLBACK_ROOT")

    try:
        return Settings(
            token=_required(env, "FULCRUM_TOKEN"),
            form_id=_required(env, "FULCRUM_FORM_ID"),
            report_url=_required(env, "FULCRUM_REPORT_URL"),
            archive_root=archive_root,
            fallback_root=Path(fallback_raw) if fallback_raw else archive_root / FALLBACK_DIR,
            staging_dir=Path(env.get("STAGING_DIR") or "staging"),
            lookup_form_id=env.get("FULCRUM_FORM_LOOK_UP") or None,
            base_url=env.get("FULCRUM_BASE_URL") or DEFAULT_BASE_URL,
            lookback_hours=float(env.get("SYNC_LOOKBACK_HOURS") or DEFAULT_LOOKBACK_HOURS),
            download_workers=int(env.get("DOWNLOAD_WORKERS") or DEFAULT_DOWNLOAD_WORKERS),
            allow_duplicates=_parse_bool(env.get("ALLOW_DUPLICATES") or "true"),
            lookup_latitude=float(env.get("LOOKUP_LATITUDE") or DEFAULT_LOOKUP_LATITUDE),
            lookup_longitude=float(env.get("LOOKUP_LONGITUDE") or DEFAULT_LOOKUP_LONGITUDE),
        )
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e
