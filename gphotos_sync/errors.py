"""
Exceptions for Google Photos Sync.

Fatal errors (config, corrupt catalog, invalid pool size) propagate up and end
the process. Per-cycle errors (auth, API) abort one sync step. Per-item errors
(download failures) are logged and never abort a batch.
"""


class PhotoSyncError(Exception):
    """Base exception for all application-specific errors."""


class ConfigError(PhotoSyncError):
    """Raised when config.json is malformed or holds invalid values."""


class CatalogError(PhotoSyncError):
    """Base for catalog storage failures."""


class CatalogCorruptError(CatalogError):
    """Raised when the catalog file exists but cannot be parsed."""


class CatalogWriteError(CatalogError):
    """Raised when a catalog snapshot cannot be written to disk."""


class AuthError(PhotoSyncError):
    """Raised when no valid OAuth token can be obtained."""


class PhotosApiError(PhotoSyncError):
    """Raised when a Photos Library API call fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class DownloadError(PhotoSyncError):
    """A single media item could not be downloaded."""


class UnsupportedMediaKindError(DownloadError):
    """Raised for media variants that have no downloadable URL (videos)."""


class DownloadTimeoutError(DownloadError):
    """Raised when a single download exceeds its time budget."""


class InvalidConcurrencyError(PhotoSyncError, ValueError):
    """Raised when the download worker pool size is less than one."""
