import logging
import os
from pathlib import Path
from typing import List, Optional

from .. import config
from ..exceptions import ArchiveFolderError
from ..logutil import ctx


class PathResolver:
    """
    Maps a (branch, project number) pair to the project's
    `Field Docs/Photos` folder under the archive root.
    """

    def __init__(self, archive_root: Path, fallback_root: Path):
        self.archive_root = archive_root
        self.fallback_root = fallback_root

    def resolve_archive_folder(self, branch: Optional[str], project_number: str) -> Path:
        """
        Returns the Photos folder for the project, creating `Field Docs` and
        `Photos` on demand. Unroutable projects go to the fallback folder.

        Raises:
            ArchiveFolderError: a required folder could not be created.
        """
        context = ctx(branch=branch, project=project_number)

        if not branch:
            logging.warning(f"No branch on record, using fallback folder{context}")
            return self.fallback_folder(project_number)

        branch_dir = self.archive_root / branch
        if not branch_dir.is_dir():
            logging.warning(f"Branch directory does not exist: {branch_dir}{context}")
            return self.fallback_folder(project_number)

        project_dir = self._find_project_dir(branch_dir, project_number)
        if project_dir is None:
            logging.warning(f"No directory starts with '{project_number}' under {branch_dir}{context}")
            return self.fallback_folder(project_number)

        field_docs = self._ensure_dir(project_dir / config.FIELD_DOCS_DIR)
        return self._ensure_dir(field_docs / config.PHOTOS_DIR)

    def fallback_folder(self, project_number: str) -> Path:
        folder = self.fallback_root / project_number if project_number else self.fallback_root
        return self._ensure_dir(folder)

    def _find_project_dir(self, branch_dir: Path, project_number: str) -> Optional[Path]:
        if not project_number:
            return None

        try:
            with os.scandir(branch_dir) as it:
                entries = list(it)
        except OSError as e:
            raise ArchiveFolderError(f"Cannot list branch directory {branch_dir}: {e}") from e

        # Sort for stable matching order
        entries.sort(key=lambda e: e.name.lower())
        matches: List[Path] = [
            Path(e.path) for e in entries
            if e.is_dir() and e.name.startswith(project_number)
        ]
        if not matches:
            return None

        if len(matches) > 1:
            # TODO: decide with the archive owners how ambiguous project prefixes should route
            names = ", ".join(m.name for m in matches)
            logging.warning(
                f"Multiple directories match project '{project_number}' under {branch_dir}: "
                f"{names}. Using {matches[0].name}"
            )
        return matches[0]

    def _ensure_dir(self, path: Path) -> Path:
        if path.is_dir():
            logging.debug(f"Folder already exists: {path}")
            return path
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveFolderError(f"Failed to create folder {path}: {e}") from e
        logging.info(f"Created folder: {path}")
        return path
