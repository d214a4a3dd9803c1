"""
Custom exception hierarchy for the photo archiver.

Errors are raised at the smallest unit that can fail independently
(a photo, then a record); only staging setup and listing records abort a pass.
"""
from typing import Optional


class PhotoArchiverError(Exception):
    """Base exception for all photo archiver errors."""
    pass


class ConfigError(PhotoArchiverError):
    """Raised when required settings are missing or malformed."""
    pass


class RemoteApiError(PhotoArchiverError):
    """Raised when a call to the remote forms service fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DownloadVerificationError(PhotoArchiverError):
    """Raised when a staged download is empty or not a readable image."""
    pass


class ArchiveFolderError(PhotoArchiverError):
    """Raised when an archive folder cannot be created."""
    pass


class ArchiveWriteError(PhotoArchiverError):
    """Raised when a staged file cannot be copied into the archive."""
    pass


class SourceVanishedError(ArchiveWriteError):
    """Raised when the staged source disappears before the copy."""
    pass


class LedgerWriteError(PhotoArchiverError):
    """Raised when a processed photo cannot be recorded in the ledger."""
    pass


class StagingError(PhotoArchiverError):
    """Raised when the staging directory cannot be created."""
    pass
