import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from . import config
from .archive.paths import PathResolver
from .archive.writer import ArchiveWriter
from .exceptions import LedgerWriteError, PhotoArchiverError
from .fetching.fetcher import Fetcher
from .ledger import LedgerRepository
from .logutil import ctx
from .metadata.captions import collect_photo_metadata
from .models import FetchResult, OutcomeStatus, PassSummary, Record, RecordOutcome
from .remote.client import FulcrumClient
from .staging import StagingArea


class SyncOrchestrator:
    def __init__(self,
                 client: FulcrumClient,
                 form_id: str,
                 ledger: LedgerRepository,
                 resolver: PathResolver,
                 writer: ArchiveWriter,
                 fetcher: Fetcher,
                 staging: StagingArea,
                 lookback_hours: float = config.DEFAULT_LOOKBACK_HOURS,
                 progress: bool = True):
        self.client = client
        self.form_id = form_id
        self.ledger = ledger
        self.resolver = resolver
        self.writer = writer
        self.fetcher = fetcher
        self.staging = staging
        self.lookback_hours = lookback_hours
        self.progress = progress

    def run_pass(self, now: Optional[datetime] = None) -> PassSummary:
        """
        Executes one synchronization pass.
        1. List records updated within the lookback window
        2. Per record: Filter -> Detect changes -> Resolve -> Fetch -> Copy -> Ledger update -> Cleanup
        3. Final cleanup

        Per-record failures are captured in the returned summary; only staging
        setup and listing records raise.
        """
        now = now or datetime.now(timezone.utc)
        summary = PassSummary(started_at=now)

        self.staging.ensure()
        leftover = self.staging.list_files()
        if leftover:
            names = ", ".join(p.name for p in leftover)
            logging.warning(f"Staging area not empty at pass start (previous run crashed?): {names}")
            self.staging.clear()

        since = now - timedelta(hours=self.lookback_hours)
        records = self.client.list_records(self.form_id, updated_since=since)
        logging.info(f"Pass started: {len(records)} record(s) updated since {since.isoformat()}")

        try:
            for record in tqdm(records, desc="Records", disable=not self.progress):
                summary.outcomes.append(self.process_record(record))
        finally:
            self.staging.clear()

        summary.finished_at = datetime.now(timezone.utc)
        logging.info(
            f"Pass complete: {summary.succeeded} ok, {summary.skipped} skipped, {summary.failed} failed, "
            f"{summary.photos_downloaded} photo(s) downloaded, {summary.files_archived} file(s) archived"
        )
        return summary

    def process_record(self, record: Record) -> RecordOutcome:
        context = ctx(record=record.id, project=record.project_number, branch=record.branch)
        outcome = RecordOutcome(
            record_id=record.id,
            status=OutcomeStatus.OK,
            project_number=record.project_number,
            branch=record.branch,
        )

        if not record.is_complete:
            outcome.status = OutcomeStatus.SKIPPED
            outcome.reason = f"status is '{record.status}'"
            logging.debug(f"Skipping record: {outcome.reason}{context}")
            return outcome

        logging.info(f"Processing record{context}")
        try:
            processed_keys = self.ledger.snapshot()
            unseen = self.fetcher.detect_changes(record, processed_keys)
            if not unseen:
                return outcome

            # Archive folders are only touched once there is something to copy
            destination = self.resolver.resolve_archive_folder(record.branch, record.project_number)
            fetched = self.fetcher.fetch(record, unseen, destination)

            outcome.downloaded = fetched.downloaded_count
            outcome.failed_downloads = [d.access_key for d in fetched.failed_downloads]
            self._archive(record, fetched, destination, outcome)

            if outcome.ledger_failures:
                outcome.status = OutcomeStatus.ERROR
                outcome.reason = f"ledger write failed for {len(outcome.ledger_failures)} photo(s)"
                logging.error(f"Record finished with ledger failures: {outcome.ledger_failures}{context}")
            else:
                logging.info(f"Processed record successfully ({len(outcome.archived)} file(s) archived){context}")
        except PhotoArchiverError as e:
            outcome.status = OutcomeStatus.ERROR
            outcome.reason = str(e)
            logging.error(f"Error processing record: {e}{context}")
        except Exception as e:
            outcome.status = OutcomeStatus.ERROR
            outcome.reason = f"{type(e).__name__}: {e}"
            logging.exception(f"Unexpected error processing record{context}")
        finally:
            self.staging.clear()

        return outcome

    def _archive(self, record: Record, fetched: FetchResult, destination: Path, outcome: RecordOutcome):
        """
        Copies the report, then each photo; a photo reaches the ledger only
        after its copy succeeded. Copy failures abort the record.
        """
        photo_metadata = collect_photo_metadata(record.payload)

        if fetched.report:
            archived = self.writer.copy(
                fetched.report.path, destination, photo_metadata,
                record.project_number, record.field_visit_notes,
            )
            outcome.archived.append(archived)

        for download in fetched.downloads:
            if not download.ok:
                continue

            archived = self.writer.copy(
                download.staged.path, destination, photo_metadata,
                record.project_number, record.field_visit_notes,
            )
            outcome.archived.append(archived)

            try:
                self.ledger.append(download.access_key, record)
            except LedgerWriteError as e:
                outcome.ledger_failures.append(download.access_key)
                logging.error(f"{e}{ctx(record=record.id, access_key=download.access_key)}")


def build_orchestrator(settings: config.Settings,
                       ledger: LedgerRepository,
                       client: Optional[FulcrumClient] = None,
                       progress: bool = True) -> SyncOrchestrator:
    """Wires the pipeline from settings."""
    client = client or FulcrumClient(
        settings.token,
        base_url=settings.base_url,
        report_url=settings.report_url,
    )
    staging = StagingArea(settings.staging_dir)
    writer = ArchiveWriter(allow_duplicates=settings.allow_duplicates)

    return SyncOrchestrator(
        client=client,
        form_id=settings.form_id,
        ledger=ledger,
        resolver=PathResolver(settings.archive_root, settings.fallback_root),
        writer=writer,
        fetcher=Fetcher(client, settings.form_id, staging, max_workers=settings.download_workers),
        staging=staging,
        lookback_hours=settings.lookback_hours,
        progress=progress,
    )
