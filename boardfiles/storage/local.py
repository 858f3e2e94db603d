"""Local file store.

Persists draft files (blob plus metadata) on disk so they survive restarts
before being uploaded. Capacity is bounded only by the disk or an explicit
``max_bytes``; there is no eviction.

Layout::

    {root}/blobs/{sha1(id)}.bin
    {root}/meta/{sha1(id)}.json

Metadata is written before its blob is moved into place and removed after
the blob, so a blob on disk always has metadata.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import mimetypes
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .errors import StorageError, StorageFullError
from .models import (
    MigrationResult,
    StorageInfo,
    StoredFile,
    StoredFileMetadata,
    StoredFileSummary,
)

logger = logging.getLogger(__name__)


def bytes_to_data_url(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 ``data:`` URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or 'application/octet-stream'};base64,{encoded}"


def data_url_to_bytes(data_url: str) -> bytes:
    """Decode a base64 ``data:`` URL (or bare base64 string).

    Raises:
        ValueError: If the payload is not valid base64
    """
    _, sep, payload = data_url.partition(",")
    if not sep:
        payload = data_url
    return base64.b64decode(payload, validate=True)


class LocalFileStore:
    """Key-value store of file blobs and their metadata."""

    def __init__(self, root: str | Path, max_bytes: int | None = None) -> None:
        if max_bytes is not None and max_bytes < 0:
            raise ValueError("max_bytes must be >= 0")

        self.root = Path(root)
        self.max_bytes = max_bytes

    @property
    def _blob_dir(self) -> Path:
        return self.root / "blobs"

    @property
    def _meta_dir(self) -> Path:
        return self.root / "meta"

    @staticmethod
    def _key(file_id: str) -> str:
        return hashlib.sha1(file_id.encode("utf-8")).hexdigest()

    def _blob_path(self, file_id: str) -> Path:
        return self._blob_dir / f"{self._key(file_id)}.bin"

    def _meta_path(self, file_id: str) -> Path:
        return self._meta_dir / f"{self._key(file_id)}.json"

    def _ensure_dirs(self) -> None:
        self._blob_dir.mkdir(parents=True, exist_ok=True)
        self._meta_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    def is_available(self) -> bool:
        """Whether the store root can be created and written to."""
        try:
            self._ensure_dirs()
        except OSError:
            return False
        return os.access(self._blob_dir, os.W_OK) and os.access(self._meta_dir, os.W_OK)

    def _usage(self) -> int:
        if not self._blob_dir.exists():
            return 0
        return sum(p.stat().st_size for p in self._blob_dir.glob("*.bin"))

    async def estimate(self) -> tuple[int, int]:
        """Return ``(usage, quota)`` in bytes.

        Quota is ``max_bytes`` when configured, otherwise the bytes already
        used plus the free space left on the disk.
        """
        usage = self._usage()
        if self.max_bytes is not None:
            return usage, self.max_bytes
        self._ensure_dirs()
        return usage, usage + shutil.disk_usage(self.root).free

    async def save(
        self,
        data: bytes,
        file_id: str,
        category: str | None = None,
        *,
        filename: str,
        mime_type: str = "",
        uploaded_at: datetime | None = None,
    ) -> StoredFile:
        """Persist a blob and its metadata, replacing any file with this id.

        Raises:
            StorageFullError: If the blob doesn't fit in the remaining quota
            StorageError: If the file can't be written
        """
        usage, quota = await self.estimate()
        existing = self._blob_path(file_id)
        available = quota - usage + (existing.stat().st_size if existing.exists() else 0)
        if len(data) > available:
            raise StorageFullError(len(data), available)

        try:
            metadata = StoredFileMetadata(
                id=file_id,
                filename=filename,
                size=len(data),
                mime_type=mime_type,
                category=category,
                uploaded_at=uploaded_at or datetime.now(timezone.utc),
            )
        except ValidationError as e:
            raise StorageError(f"Invalid file metadata: {e}") from e

        try:
            self._ensure_dirs()
            self._write_atomic(
                self._meta_path(file_id), metadata.model_dump_json().encode("utf-8")
            )
            self._write_atomic(existing, data)
        except OSError as e:
            logger.error(f"Error saving file to local store: {e}", extra={"file_id": file_id})
            raise StorageError(f"Failed to save file {file_id}") from e

        logger.info(
            f"Saved {file_id} to local store",
            extra={"file_id": file_id, "size": len(data), "category": category},
        )
        return metadata.with_blob(data)

    async def save_path(
        self,
        path: str | Path,
        file_id: str,
        category: str | None = None,
    ) -> StoredFile:
        """Persist a file from disk, guessing its MIME type from the name."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return await self.save(
            path.read_bytes(),
            file_id,
            category,
            filename=path.name,
            mime_type=mime_type or "",
        )

    def _read_metadata(self, meta_path: Path) -> StoredFileMetadata | None:
        try:
            return StoredFileMetadata.model_validate_json(meta_path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Unreadable metadata {meta_path.name}: {e}")
            return None

    async def get(self, file_id: str) -> StoredFile | None:
        """Get a file by id, or None if it isn't stored."""
        blob_path = self._blob_path(file_id)
        if not blob_path.exists():
            logger.debug(f"Local store miss: {file_id}")
            return None

        metadata = self._read_metadata(self._meta_path(file_id))
        if metadata is None:
            return None

        return metadata.with_blob(blob_path.read_bytes())

    async def get_all(self) -> dict[str, StoredFile]:
        """All stored files keyed by id."""
        if not self._meta_dir.exists():
            return {}

        files: dict[str, StoredFile] = {}
        for meta_path in sorted(self._meta_dir.glob("*.json")):
            metadata = self._read_metadata(meta_path)
            if metadata is None:
                continue
            blob_path = self._blob_path(metadata.id)
            if blob_path.exists():
                files[metadata.id] = metadata.with_blob(blob_path.read_bytes())
        return files

    async def delete(self, file_id: str) -> None:
        """Remove a file. Deleting an unknown id is a no-op."""
        # Blob first so metadata never goes missing under a live blob
        self._blob_path(file_id).unlink(missing_ok=True)
        self._meta_path(file_id).unlink(missing_ok=True)
        logger.info(f"Deleted {file_id} from local store")

    async def clear(self) -> None:
        """Remove all files."""
        for directory in (self._blob_dir, self._meta_dir):
            if directory.exists():
                shutil.rmtree(directory)
        logger.info("Cleared local store")

    async def storage_info(self) -> StorageInfo:
        """Usage report: total bytes, file count and per-file summary."""
        files = list((await self.get_all()).values())
        return StorageInfo(
            used=sum(f.size for f in files),
            file_count=len(files),
            files=[StoredFileSummary(id=f.id, filename=f.filename, size=f.size) for f in files],
        )

    async def migrate_from_legacy(
        self,
        path: str | Path,
        clear_after: bool = False,
    ) -> MigrationResult:
        """
        Import files from the legacy base64 JSON format.

        The legacy file maps ids to
        ``{filename, size, type, base64, uploadedAt, category?}`` where
        ``base64`` is a data URL.

        Args:
            path: Legacy JSON file
            clear_after: Delete the legacy file if every entry migrated

        Returns:
            MigrationResult with per-file errors
        """
        path = Path(path)
        if not path.exists():
            return MigrationResult(success=True)

        try:
            legacy = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error during migration: {e}")
            return MigrationResult(success=False, errors=[f"Migration failed: {e}"])

        if not isinstance(legacy, dict):
            logger.error(f"Legacy file {path} is not a JSON object")
            return MigrationResult(
                success=False,
                errors=["Migration failed: legacy file must be a JSON object"],
            )

        migrated = 0
        errors: list[str] = []

        for file_id, entry in legacy.items():
            try:
                uploaded_at = entry.get("uploadedAt")
                await self.save(
                    data_url_to_bytes(entry["base64"]),
                    file_id,
                    entry.get("category"),
                    filename=entry["filename"],
                    mime_type=entry.get("type", ""),
                    uploaded_at=datetime.fromisoformat(uploaded_at) if uploaded_at else None,
                )
                migrated += 1
            except (KeyError, ValueError, AttributeError, StorageError) as e:
                name = entry.get("filename", file_id) if isinstance(entry, dict) else file_id
                errors.append(f"Failed to migrate file {name}: {e}")
                logger.error(f"Error migrating file {file_id}: {e}")

        if clear_after and not errors:
            path.unlink()

        return MigrationResult(
            success=not errors,
            migrated_count=migrated,
            failed_count=len(errors),
            errors=errors,
        )


def has_legacy_files(path: str | Path) -> bool:
    """Whether a legacy JSON file exists and holds at least one entry."""
    try:
        return bool(json.loads(Path(path).read_text(encoding="utf-8")))
    except (OSError, ValueError):
        return False
