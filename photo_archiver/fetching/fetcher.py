import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Set

from PIL import Image, UnidentifiedImageError

from .. import config
from ..archive.writer import report_stem
from ..exceptions import DownloadVerificationError, RemoteApiError
from ..logutil import ctx
from ..models import FetchResult, PhotoDownload, PhotoRef, Record, StagedFile
from ..remote.client import FulcrumClient
from ..staging import StagingArea


class Fetcher:
    """
    Downloads a record's unseen photos, and its PDF report, into staging.
    """

    def __init__(self,
                 client: FulcrumClient,
                 form_id: str,
                 staging: StagingArea,
                 max_workers: int = config.DEFAULT_DOWNLOAD_WORKERS,
                 verify_images: bool = True):
        self.client = client
        self.form_id = form_id
        self.staging = staging
        self.max_workers = max(1, max_workers)
        self.verify_images = verify_images

    def detect_changes(self, record: Record, processed_keys: Set[str]) -> List[str]:
        """
        Returns the record's photo access keys missing from `processed_keys`,
        in listing order. An empty list means there is nothing to do.

        Raises:
            RemoteApiError: listing photos failed.
        """
        photos = self.client.list_photos(self.form_id, record.id)
        unseen = self._unseen_keys(photos, processed_keys)
        context = ctx(record=record.id, project=record.project_number)

        if unseen:
            logging.info(f"Found {len(unseen)} new photo(s) of {len(photos)}{context}")
        else:
            logging.info(f"All {len(photos)} photo(s) already processed{context}")
        return unseen

    def fetch(self, record: Record, unseen_keys: List[str], destination: Path) -> FetchResult:
        """
        1. Report: download unless already archived at `destination`.
        2. Photos: download `unseen_keys` concurrently, isolating failures.

        Raises:
            RemoteApiError: rendering the report failed.
        """
        if not unseen_keys:
            return FetchResult()

        context = ctx(record=record.id, project=record.project_number)
        self.staging.ensure()

        result = FetchResult(unseen_keys=list(unseen_keys))
        archived_report = destination / f"{report_stem(record.project_number, record.field_visit_notes)}.pdf"
        if archived_report.exists():
            logging.info(f"Report already archived, skipping download: {archived_report}{context}")
            result.report_skipped = True
        else:
            result.report = self._fetch_report(record)

        result.downloads = self._fetch_photos(result.unseen_keys, record)
        failed = len(result.failed_downloads)
        logging.info(f"Downloaded {result.downloaded_count}/{len(unseen_keys)} photo(s), {failed} failed{context}")
        return result

    def _unseen_keys(self, photos: Iterable[PhotoRef], processed_keys: Set[str]) -> List[str]:
        unseen: List[str] = []
        for photo in photos:
            if photo.access_key in processed_keys:
                logging.debug(f"Access key {photo.access_key} already in ledger. Skipping.")
            elif photo.access_key not in unseen:
                unseen.append(photo.access_key)
        return unseen

    def _fetch_report(self, record: Record) -> StagedFile:
        path = self.staging.report_path(record.id)
        logging.info(f"Downloading report{ctx(record=record.id)}")
        try:
            size = self.client.render_report_pdf(record.id, path)
        except RemoteApiError:
            path.unlink(missing_ok=True)
            raise

        if size == 0:
            path.unlink(missing_ok=True)
            raise DownloadVerificationError(f"Report for record {record.id} was empty")

        logging.info(f"Report downloaded: {path}{ctx(record=record.id, bytes=size)}")
        return StagedFile(path=path, kind="report")

    def _fetch_photos(self, access_keys: List[str], record: Record) -> List[PhotoDownload]:
        """
        Downloads photos on a bounded pool. Waits for every download and
        returns one result per key, in input order.
        """
        results: Dict[str, PhotoDownload] = {}
        workers = min(self.max_workers, len(access_keys))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_key = {
                executor.submit(self._download_one, key, record.id): key
                for key in access_keys
            }
            for future in as_completed(future_to_key):
                key = future_to_key[future]
                try:
                    results[key] = future.result()
                except Exception as e:
                    logging.error(f"Unexpected failure downloading photo {key}: {e}")
                    self.staging.photo_path(key).unlink(missing_ok=True)
                    results[key] = PhotoDownload(access_key=key, error=str(e))

        return [results[key] for key in access_keys]

    def _download_one(self, access_key: str, record_id: str) -> PhotoDownload:
        path = self.staging.photo_path(access_key)
        context = ctx(record=record_id, access_key=access_key)
        logging.debug(f"Downloading photo{context}")

        try:
            self.client.download_photo_media(access_key, path, quality="original")
            self._verify(path)
        except (RemoteApiError, DownloadVerificationError, OSError) as e:
            path.unlink(missing_ok=True)
            logging.error(f"Error downloading photo: {e}{context}")
            return PhotoDownload(access_key=access_key, error=str(e))

        logging.info(f"Photo saved: {path}{context}")
        return PhotoDownload(
            access_key=access_key,
            staged=StagedFile(path=path, kind="photo", access_key=access_key),
        )

    def _verify(self, path: Path):
        """Rejects empty downloads and, optionally, unreadable images."""
        if not path.exists() or path.stat().st_size == 0:
            raise DownloadVerificationError(f"Downloaded file is empty: {path.name}")

        if not self.verify_images:
            return
        try:
            with Image.open(path) as img:
                img.verify()
        except (UnidentifiedImageError, SyntaxError, ValueError) as e:
            raise DownloadVerificationError(f"Downloaded file is not a valid image: {path.name} ({e})") from e
        except OSError as e:
            raise DownloadVerificationError(f"Downloaded image is truncated or corrupt: {path.name} ({e})") from e
