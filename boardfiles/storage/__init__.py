"""Storage models, errors, the local file store and the signed URL cache.

Remote bucket operations go through ``boardfiles.client.StorageApiClient``.
"""

from .errors import (
    DownloadFailedError,
    FileNotFoundError,
    FileTooLargeError,
    InvalidStoragePathError,
    StorageError,
    StorageFullError,
    UploadFailedError,
)
from .local import LocalFileStore, bytes_to_data_url, data_url_to_bytes, has_legacy_files
from .models import (
    DownloadResult,
    MigrationResult,
    ObjectInfo,
    ObjectReference,
    SignedURLEntry,
    StorageBucket,
    StorageInfo,
    StorageQuota,
    StoredFile,
    StoredFileSummary,
    UploadResult,
)
from .signed_urls import SignedURLCache

__all__ = [
    "DownloadFailedError",
    "DownloadResult",
    "FileNotFoundError",
    "FileTooLargeError",
    "InvalidStoragePathError",
    "LocalFileStore",
    "MigrationResult",
    "ObjectInfo",
    "ObjectReference",
    "SignedURLCache",
    "SignedURLEntry",
    "StorageBucket",
    "StorageError",
    "StorageFullError",
    "StorageInfo",
    "StorageQuota",
    "StoredFile",
    "StoredFileSummary",
    "UploadFailedError",
    "UploadResult",
    "bytes_to_data_url",
    "data_url_to_bytes",
    "has_legacy_files",
]
