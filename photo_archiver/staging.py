import logging
import os
from pathlib import Path
from typing import List

from . import config
from .exceptions import StagingError


class StagingArea:
    """
    Local directory holding downloaded files until they are archived.
    Must be empty between records.
    """

    def __init__(self, root: Path):
        self.root = root

    def ensure(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingError(f"Cannot create staging directory {self.root}: {e}") from e
        return self.root

    def photo_path(self, access_key: str) -> Path:
        return self.root / f"{access_key}{config.PHOTO_STAGING_EXT}"

    def report_path(self, record_id: str) -> Path:
        return self.root / config.REPORT_STAGING_PATTERN.format(record_id=record_id)

    def list_files(self) -> List[Path]:
        if not self.root.exists():
            return []
        with os.scandir(self.root) as it:
            files = [Path(e.path) for e in it if e.is_file(follow_symlinks=False)]
        return sorted(files, key=lambda p: p.name.lower())

    def is_empty(self) -> bool:
        return not self.list_files()

    def clear(self) -> int:
        """Deletes every staged file. Returns how many were removed."""
        removed = 0
        for path in self.list_files():
            try:
                path.unlink()
                removed += 1
                logging.debug(f"Deleted staged file: {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                logging.error(f"Error deleting staged file {path}: {e}")
        if removed:
            logging.info(f"Cleanup removed {removed} staged file(s) from {self.root}")
        return removed
