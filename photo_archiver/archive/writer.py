import logging
import re
import shutil
from pathlib import Path
from typing import List, Optional

from .. import config
from ..exceptions import ArchiveWriteError, SourceVanishedError
from ..logutil import ctx
from ..metadata.captions import find_caption
from ..models import PhotoMetadata


def sanitize_filename(name: str) -> str:
    """
    Replaces line breaks, separators and reserved characters with '-',
    trims the result and bounds its length.
    """
    cleaned = config.ILLEGAL_FILENAME_CHARS.sub("-", name)
    cleaned = re.sub(r"-{2,}", "-", cleaned)
    cleaned = cleaned.strip().strip(". -")
    if len(cleaned) > config.MAX_FILENAME_STEM:
        cleaned = cleaned[:config.MAX_FILENAME_STEM].rstrip(". -")
    if not cleaned:
        return config.PLACEHOLDER_CAPTION
    return cleaned


def is_report(path: Path) -> bool:
    return path.suffix.lower() == ".pdf"


def report_stem(project_number: str, field_visit_notes: Optional[str]) -> str:
    notes = field_visit_notes if field_visit_notes and field_visit_notes.strip() else config.DEFAULT_REPORT_NOTES
    return sanitize_filename(config.PDF_NAME_PATTERN.format(project_number=project_number, notes=notes))


def derive_filename(staged_path: Path,
                    photo_metadata: List[PhotoMetadata],
                    project_number: str,
                    field_visit_notes: Optional[str]) -> str:
    """
    Archive filename for a staged file.
    Photos are named by caption (looked up by access key), reports by project.
    """
    ext = staged_path.suffix.lower()
    if is_report(staged_path):
        return f"{report_stem(project_number, field_visit_notes)}{ext}"

    caption = find_caption(photo_metadata, staged_path.stem) or config.PLACEHOLDER_CAPTION
    return f"{sanitize_filename(caption)}{ext}"


class ArchiveWriter:
    def __init__(self, allow_duplicates: bool = True):
        self.allow_duplicates = allow_duplicates

    def copy(self,
             staged_path: Path,
             destination_folder: Path,
             photo_metadata: List[PhotoMetadata],
             project_number: str,
             field_visit_notes: Optional[str] = None) -> Path:
        """
        Copies a staged photo or report into the archive folder.

        Returns the archived path, which is the existing file when the
        artifact was already archived (reports, or photos with duplicates
        disabled).
        """
        if not staged_path.is_file():
            raise ArchiveWriteError(f"Staged file not found: {staged_path}")
        if not destination_folder.is_dir():
            raise ArchiveWriteError(f"Destination folder is not accessible: {destination_folder}")

        filename = derive_filename(staged_path, photo_metadata, project_number, field_visit_notes)
        context = ctx(project=project_number, source=staged_path.name)
        logging.info(f"Copying {staged_path.name} -> {destination_folder / filename}{context}")

        dest = destination_folder / filename
        if dest.exists():
            if is_report(staged_path) or not self.allow_duplicates:
                logging.info(f"Already archived, skipping copy: {dest}{context}")
                return dest
            dest = self._resolve_collision(destination_folder, filename)

        # Staged files can vanish between the first check and the copy
        if not staged_path.exists():
            raise SourceVanishedError(f"Staged file vanished before copy: {staged_path}")

        try:
            shutil.copy2(str(staged_path), str(dest))
        except FileNotFoundError as e:
            if not staged_path.exists():
                raise SourceVanishedError(f"Staged file vanished during copy: {staged_path}") from e
            raise ArchiveWriteError(f"Failed to copy {staged_path} -> {dest}: {e}") from e
        except OSError as e:
            raise ArchiveWriteError(f"Failed to copy {staged_path} -> {dest}: {e}") from e

        logging.info(f"Archived: {dest}{context}")
        return dest

    def _resolve_collision(self, folder: Path, filename: str) -> Path:
        """Appends (1), (2), ... before the extension until the name is free."""
        stem = Path(filename).stem
        ext = Path(filename).suffix
        counter = 1
        candidate = folder / f"{stem}({counter}){ext}"

        while candidate.exists():
            counter += 1
            candidate = folder / f"{stem}({counter}){ext}"

        return candidate
