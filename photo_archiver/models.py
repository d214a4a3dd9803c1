from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config


@dataclass
class Record:
    """
    A remote inspection record. Read once per pass, never persisted.
    """
    id: str
    status: str
    project_number: str
    branch: Optional[str] = None
    field_visit_notes: Optional[str] = None
    updated_at: Optional[str] = None
    # Raw decoded payload, kept for the photo metadata scan
    payload: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_complete(self) -> bool:
        return self.status == config.COMPLETE_STATUS

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Record":
        values = payload.get("form_values") or {}

        branch = None
        branch_value = values.get(config.FIELD_BRANCH)
        if isinstance(branch_value, dict):
            choices = branch_value.get("choice_values") or []
            if choices:
                branch = str(choices[0])
        elif isinstance(branch_value, str) and branch_value:
            branch = branch_value

        project = values.get(config.FIELD_PROJECT_NUMBER)
        notes = values.get(config.FIELD_VISIT_NOTES)

        return cls(
            id=str(payload["id"]),
            status=payload.get("status") or "",
            project_number=str(project).strip() if project is not None else "",
            branch=branch,
            field_visit_notes=str(notes) if notes else None,
            updated_at=payload.get("updated_at"),
            payload=payload,
        )


@dataclass(frozen=True)
class PhotoRef:
    """A photo attached to a record, as listed by the remote service."""
    access_key: str
    record_id: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class PhotoMetadata:
    photo_id: str
    caption: Optional[str]


@dataclass
class LedgerEntry:
    """Durable proof that a photo was downloaded and archived."""
    access_key: str
    record_id: str
    project_number: str
    recorded_at: datetime
    entry_id: Optional[str] = None


@dataclass
class StagedFile:
    path: Path
    kind: str  # 'photo' or 'report'
    access_key: Optional[str] = None


@dataclass
class PhotoDownload:
    """Result of one photo download: either a staged file or an error."""
    access_key: str
    staged: Optional[StagedFile] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.staged is not None and self.error is None


@dataclass
class FetchResult:
    unseen_keys: List[str] = field(default_factory=list)
    downloads: List[PhotoDownload] = field(default_factory=list)
    report: Optional[StagedFile] = None
    report_skipped: bool = False

    @property
    def downloaded_count(self) -> int:
        return sum(1 for d in self.downloads if d.ok)

    @property
    def failed_downloads(self) -> List[PhotoDownload]:
        return [d for d in self.downloads if not d.ok]


class OutcomeStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class RecordOutcome:
    """Per-record result collected into the pass summary."""
    record_id: str
    status: OutcomeStatus
    project_number: str = ""
    branch: Optional[str] = None
    reason: Optional[str] = None
    downloaded: int = 0
    archived: List[Path] = field(default_factory=list)
    failed_downloads: List[str] = field(default_factory=list)
    ledger_failures: List[str] = field(default_factory=list)


@dataclass
class PassSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[RecordOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.OK)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.ERROR)

    @property
    def photos_downloaded(self) -> int:
        return sum(o.downloaded for o in self.outcomes)

    @property
    def files_archived(self) -> int:
        return sum(len(o.archived) for o in self.outcomes)
