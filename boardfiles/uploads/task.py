"""Upload task state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..storage.models import StorageBucket
from ..types import FileId, StoragePath


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PAUSED = "paused"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        """Pending, uploading and paused tasks hold their file id."""
        return self in (UploadStatus.PENDING, UploadStatus.UPLOADING, UploadStatus.PAUSED)


class UploadTask(BaseModel):
    """
    A tracked upload.

    Created on upload start, mutated by progress callbacks, terminated on
    complete, error or cancel.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    file_id: FileId
    bucket: StorageBucket
    path: StoragePath
    progress: int = Field(default=0, ge=0, le=100)
    status: UploadStatus = UploadStatus.PENDING
    error: str | None = None

    # Internal state (not part of public interface)
    _data: bytes = PrivateAttr(default=b"")
    _content_type: str | None = PrivateAttr(default=None)
    _upsert: bool = PrivateAttr(default=False)
    _on_progress: Callable[[int], Any] | None = PrivateAttr(default=None)
    _on_complete: Callable[..., Any] | None = PrivateAttr(default=None)
    _on_error: Callable[..., Any] | None = PrivateAttr(default=None)
    _handle: asyncio.Task[None] | None = PrivateAttr(default=None)
    _generation: int = PrivateAttr(default=0)

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def is_running(self) -> bool:
        return self._handle is not None and not self._handle.done()
