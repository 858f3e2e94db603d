"""
boardfiles - document storage SDK for co-op/condo board applications.

Uploads application documents to hosted object storage, registers their
metadata with the portal API, keeps draft files in a local store and caches
signed download URLs.

Example usage:
    from boardfiles import (
        DocumentApiClient,
        LocalFileStore,
        SignedURLCache,
        StorageApiClient,
        StorageBucket,
        StorageConfig,
        UploadManager,
    )

    # Load config from environment variables
    config = StorageConfig()

    storage = StorageApiClient.from_config(config)
    documents = DocumentApiClient(str(config.api_url), storage)

    # Keep a draft locally until it is uploaded
    store = LocalFileStore(config.cache_dir, config.cache_max_bytes)
    draft = await store.save(data, "file-1", "BANK_STATEMENT", filename="stmt.pdf")

    # Upload with progress, pause and resume
    uploads = UploadManager(storage)
    uploads.start_upload(
        "file-1", draft.blob, StorageBucket.DOCUMENTS, "user/app/doc/stmt.pdf",
        on_progress=lambda p: print(f"{p}%"),
        on_complete=lambda result: print("stored at", result.path),
        on_error=lambda error: print("failed:", error),
    )

    # Cached signed URLs, refreshed shortly before they expire
    urls = SignedURLCache(
        documents.fetch_signed_urls,
        refresh_buffer=config.signed_url_refresh_buffer,
    )
    url = await urls.get(document_id)
"""

from .client import AuthSession, StorageApiClient, validate_storage_path
from .config import StorageConfig
from .documents import (
    CreateDocumentInput,
    Document,
    DocumentApiClient,
    DocumentCategory,
    DocumentStatus,
    DocumentUploader,
    build_document_path,
)
from .errors import ApiError, AuthenticationError, BoardFilesError, ConfigError
from .storage import (
    DownloadFailedError,
    DownloadResult,
    FileNotFoundError,
    FileTooLargeError,
    InvalidStoragePathError,
    LocalFileStore,
    MigrationResult,
    ObjectInfo,
    ObjectReference,
    SignedURLCache,
    SignedURLEntry,
    StorageBucket,
    StorageError,
    StorageFullError,
    StorageInfo,
    StorageQuota,
    StoredFile,
    StoredFileSummary,
    UploadFailedError,
    UploadResult,
)
from .uploads import UploadManager, UploadStatus, UploadTask

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "AuthSession",
    "AuthenticationError",
    "BoardFilesError",
    "ConfigError",
    "CreateDocumentInput",
    "Document",
    "DocumentApiClient",
    "DocumentCategory",
    "DocumentStatus",
    "DocumentUploader",
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
    "StorageApiClient",
    "StorageBucket",
    "StorageConfig",
    "StorageError",
    "StorageFullError",
    "StorageInfo",
    "StorageQuota",
    "StoredFile",
    "StoredFileSummary",
    "UploadFailedError",
    "UploadManager",
    "UploadResult",
    "UploadStatus",
    "UploadTask",
    "build_document_path",
    "validate_storage_path",
]
