"""Upload manager - tracks in-flight uploads keyed by file id.

Each upload runs as its own asyncio task; tasks share nothing but the
status map.

IMPLEMENTATION NOTES:
1. Pause cancels the transfer and marks the task paused; completion is
   never reported for a paused task
2. Resume relaunches the upload from the first byte (no byte-range resume)
3. No retry or backoff: a single failure goes straight to on_error
4. Callbacks may be plain functions or coroutines. Coroutine progress
   callbacks are scheduled as they arrive and drained before the attempt
   reports completion or failure
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..errors import BoardFilesError
from ..storage.errors import StorageError, UploadFailedError
from ..storage.models import StorageBucket, UploadResult
from .task import UploadStatus, UploadTask

if TYPE_CHECKING:
    from ..client import StorageApiClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Any]
CompleteCallback = Callable[[UploadResult], Any]
ErrorCallback = Callable[[StorageError], Any]


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def _await_quietly(handle: asyncio.Task[None]) -> None:
    """Await an upload attempt, ignoring its cancellation but not ours."""
    try:
        await asyncio.shield(handle)
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise


class UploadManager:
    """
    Upload manager with pause, resume and cancel.

    Example:
        manager = UploadManager(client)
        manager.start_upload(
            "file-1", data, StorageBucket.DOCUMENTS, "user/app/doc/id.pdf",
            on_progress=lambda p: print(f"{p}%"),
            on_complete=lambda result: print(result.path),
            on_error=lambda error: print(error),
        )
        await manager.wait("file-1")
    """

    def __init__(self, client: StorageApiClient):
        self._client = client
        self._tasks: dict[str, UploadTask] = {}

    @property
    def tasks(self) -> dict[str, UploadTask]:
        """Snapshot of the status map."""
        return dict(self._tasks)

    def get_task(self, file_id: str) -> UploadTask | None:
        return self._tasks.get(file_id)

    def start_upload(
        self,
        file_id: str,
        data: bytes,
        bucket: StorageBucket | str,
        path: str,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        *,
        content_type: str | None = None,
        upsert: bool = False,
    ) -> UploadTask:
        """
        Begin uploading ``data`` to ``bucket``/``path``.

        Must be called from a running event loop. Starting an id that
        already has an active (pending, uploading or paused) task is a
        no-op and returns the existing task.
        """
        existing = self._tasks.get(file_id)
        if existing is not None and existing.status.is_active:
            logger.debug("Upload already tracked", extra={"file_id": file_id})
            return existing

        task = UploadTask(file_id=file_id, bucket=StorageBucket(bucket), path=path)
        task._data = data
        task._content_type = content_type
        task._upsert = upsert
        task._on_progress = on_progress
        task._on_complete = on_complete
        task._on_error = on_error

        self._tasks[file_id] = task
        logger.info(
            "Starting upload",
            extra={"file_id": file_id, "bucket": task.bucket.value, "size": len(data)},
        )
        self._launch(task)
        return task

    def _launch(self, task: UploadTask) -> None:
        task._generation += 1
        task.progress = 0
        task.error = None
        task.status = UploadStatus.PENDING
        task._handle = asyncio.create_task(self._run(task, task._generation))

    async def _run(self, task: UploadTask, generation: int) -> None:
        """Perform one upload attempt."""

        def current() -> bool:
            return task._generation == generation and task.status is UploadStatus.UPLOADING

        pending: list[asyncio.Future[Any]] = []

        def progress(percent: int) -> None:
            if not current():
                return
            task.progress = percent
            if task._on_progress is not None:
                outcome = task._on_progress(percent)
                if inspect.isawaitable(outcome):
                    pending.append(asyncio.ensure_future(outcome))

        task.status = UploadStatus.UPLOADING

        try:
            result = await self._client.upload_object(
                task.bucket,
                task.path,
                task._data,
                content_type=task._content_type,
                upsert=task._upsert,
                on_progress=progress,
            )
            if pending:
                await asyncio.gather(*pending)
        except asyncio.CancelledError:
            for future in pending:
                future.cancel()
            raise
        except Exception as e:
            for future in pending:
                future.cancel()
            if not current():
                return
            if isinstance(e, StorageError):
                error = e
            elif isinstance(e, BoardFilesError):
                error = UploadFailedError(str(e))
            else:
                error = UploadFailedError(f"{type(e).__name__}: {e}")
            task.status = UploadStatus.ERROR
            task.error = str(error)
            logger.warning(
                f"Upload failed: {error}",
                extra={"file_id": task.file_id},
            )
            await _invoke(task._on_error, error)
            return

        # Paused or relaunched while the response was in flight
        if not current():
            return

        task.status = UploadStatus.COMPLETE
        task.progress = 100
        logger.info("Upload complete", extra={"file_id": task.file_id, "path": result.path})
        await _invoke(task._on_complete, result)

    def pause_upload(self, file_id: str) -> bool:
        """
        Pause an upload.

        Best effort: the transfer is cancelled, but the server may already
        have stored the object. Returns False if there was nothing to pause.
        """
        task = self._tasks.get(file_id)
        if task is None or task.status not in (UploadStatus.PENDING, UploadStatus.UPLOADING):
            return False

        task.status = UploadStatus.PAUSED
        if task._handle is not None and not task._handle.done():
            task._handle.cancel()

        logger.info("Upload paused", extra={"file_id": file_id, "progress": task.progress})
        return True

    def resume_upload(
        self,
        file_id: str,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> bool:
        """
        Resume a paused upload by relaunching it from the beginning.

        Callbacks given here replace the ones supplied at start. Returns
        False if the task isn't paused.
        """
        task = self._tasks.get(file_id)
        if task is None or task.status is not UploadStatus.PAUSED:
            return False

        if on_progress is not None:
            task._on_progress = on_progress
        if on_complete is not None:
            task._on_complete = on_complete
        if on_error is not None:
            task._on_error = on_error

        logger.info("Resuming upload", extra={"file_id": file_id})
        self._launch(task)
        return True

    def cancel_upload(self, file_id: str) -> bool:
        """Abandon an upload and stop tracking it."""
        task = self._tasks.pop(file_id, None)
        if task is None:
            return False

        # Invalidate any in-flight attempt before cancelling it
        task._generation += 1
        if task._handle is not None and not task._handle.done():
            task._handle.cancel()

        logger.info("Upload cancelled", extra={"file_id": file_id})
        return True

    async def wait(self, file_id: str) -> UploadTask | None:
        """Wait for the current attempt of an upload to finish."""
        task = self._tasks.get(file_id)
        if task is None:
            return None

        handle = task._handle
        if handle is not None:
            await _await_quietly(handle)
        return task

    async def cleanup(self) -> None:
        """Abandon all tracked uploads."""
        handles = []
        for file_id in list(self._tasks):
            task = self._tasks[file_id]
            if task._handle is not None:
                handles.append(task._handle)
            self.cancel_upload(file_id)

        for handle in handles:
            await _await_quietly(handle)

        logger.debug("Upload manager cleaned up")
