"""Storage data models.

Covers both sides of file handling: objects in the hosted storage buckets
and files held in the local store.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from ..types import Category, DocumentId, FileId, Filename, StoragePath
from .errors import InvalidStoragePathError

MB = 1024 * 1024

# Upload size limits per bucket (bytes)
PROFILE_PHOTO_MAX_SIZE = 5 * MB
DEFAULT_MAX_SIZE = 25 * MB


class StorageBucket(str, Enum):
    """Storage bucket names."""

    DOCUMENTS = "documents"
    PROFILE_PHOTOS = "profile-photos"
    BUILDING_ASSETS = "building-assets"

    @property
    def is_public(self) -> bool:
        """Public buckets serve unsigned URLs and don't count toward quota."""
        return self is StorageBucket.BUILDING_ASSETS

    @property
    def max_size(self) -> int:
        """Maximum upload size in bytes."""
        if self is StorageBucket.PROFILE_PHOTOS:
            return PROFILE_PHOTO_MAX_SIZE
        return DEFAULT_MAX_SIZE


class StoredFile(BaseModel):
    """A file held in the local store: blob plus metadata."""

    id: FileId
    filename: Filename
    size: int = Field(ge=0)
    mime_type: str = ""
    blob: bytes = Field(repr=False)
    category: Category | None = None
    uploaded_at: datetime


class StoredFileMetadata(BaseModel):
    """Metadata half of a StoredFile, as persisted beside the blob."""

    id: FileId
    filename: Filename
    size: int = Field(ge=0)
    mime_type: str = ""
    category: Category | None = None
    uploaded_at: datetime

    def with_blob(self, blob: bytes) -> StoredFile:
        return StoredFile(blob=blob, **self.model_dump())


class StoredFileSummary(BaseModel):
    id: FileId
    filename: Filename
    size: int


class StorageInfo(BaseModel):
    """Local store usage report."""

    used: int = 0
    file_count: int = 0
    files: list[StoredFileSummary] = Field(default_factory=list)


class MigrationResult(BaseModel):
    """Outcome of importing files from the legacy base64 JSON format."""

    success: bool
    migrated_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)


class UploadResult(BaseModel):
    """Result of uploading an object to a bucket."""

    path: str
    url: str | None = None
    """Public URL, only set for public buckets."""
    size: int


class DownloadResult(BaseModel):
    """Download URL for an object."""

    url: str
    expires_in: int
    """URL lifetime in seconds (0 for public URLs, which don't expire)."""


class StorageQuota(BaseModel):
    """Remote storage usage for the signed-in user."""

    usage: int
    quota: int | None
    percent_used: float


class ObjectInfo(BaseModel):
    """Entry of a bucket listing. Folders have no id."""

    name: str
    id: str | None = None
    size: int | None = None
    mime_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_folder(self) -> bool:
        return self.id is None

    @classmethod
    def from_api(cls, item: dict) -> ObjectInfo:
        metadata = item.get("metadata") or {}
        return cls(
            name=item["name"],
            id=item.get("id"),
            size=metadata.get("size"),
            mime_type=metadata.get("mimetype"),
            created_at=item.get("created_at"),
            updated_at=item.get("updated_at"),
        )


class SignedURLEntry(BaseModel):
    """Time-limited access URL for a private document."""

    document_id: DocumentId
    url: str
    expires_at: datetime

    def is_stale(self, now: datetime, buffer: timedelta = timedelta(0)) -> bool:
        """True once the URL expires within ``buffer`` of ``now``."""
        return self.expires_at <= now + buffer


class ObjectReference(BaseModel):
    """Reference to an object in a bucket.

    Format: {bucket}/{path}
    Example: documents/9f1c.../app-1/doc-1/passport.pdf
    """

    bucket: StorageBucket
    path: StoragePath

    def to_string(self) -> str:
        return f"{self.bucket.value}/{self.path}"

    @classmethod
    def from_string(cls, reference: str) -> ObjectReference:
        """Parse a ``bucket/path`` reference.

        Raises:
            InvalidStoragePathError: If reference format is invalid
        """
        match = re.match(r"^([a-z0-9-]+)/(.+)$", reference)
        if not match:
            raise InvalidStoragePathError(reference)

        try:
            bucket = StorageBucket(match.group(1))
        except ValueError as e:
            raise InvalidStoragePathError(reference) from e

        path = match.group(2)
        if path.startswith("/") or ".." in path.split("/"):
            raise InvalidStoragePathError(reference)

        return cls(bucket=bucket, path=path)
