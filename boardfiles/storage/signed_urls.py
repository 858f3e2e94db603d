"""Signed URL cache.

Maps document ids to time-limited download URLs. URLs are reused until they
come within ``refresh_buffer`` of expiry, then regenerated lazily on the
next lookup (or eagerly by the optional auto-refresh task). Stale ids are
always fetched in a single batch request.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from ..errors import BoardFilesError
from .errors import FileNotFoundError
from .models import SignedURLEntry

logger = logging.getLogger(__name__)

SignedURLFetcher = Callable[[list[str]], Awaitable[dict[str, SignedURLEntry]]]

# Longest the auto-refresh task sleeps before re-checking entries (seconds)
MAX_REFRESH_SLEEP = 60.0

# Pause after each refresh attempt so a failing backend isn't hammered
MIN_REFRESH_INTERVAL = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignedURLCache:
    """
    Cache of signed document URLs.

    Example:
        cache = SignedURLCache(documents_client.fetch_signed_urls)
        url = await cache.get(document_id)
    """

    def __init__(
        self,
        fetcher: SignedURLFetcher,
        *,
        refresh_buffer: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Create a cache.

        Args:
            fetcher: Async callable returning entries for a list of ids
            refresh_buffer: Treat URLs as stale this many seconds before expiry
            clock: Returns the current UTC time (overridable for tests)
        """
        self._fetcher = fetcher
        self._buffer = timedelta(seconds=refresh_buffer)
        self._clock = clock
        self._entries: dict[str, SignedURLEntry] = {}
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    @property
    def entries(self) -> dict[str, SignedURLEntry]:
        """Snapshot of cached entries, stale ones included."""
        return dict(self._entries)

    def _fresh(self, document_id: str) -> SignedURLEntry | None:
        entry = self._entries.get(document_id)
        if entry is None or entry.is_stale(self._clock(), self._buffer):
            return None
        return entry

    def is_expired(self, document_id: str) -> bool:
        """True if the id has no URL or its URL is within the refresh buffer."""
        return self._fresh(document_id) is None

    async def _fetch(self, document_ids: list[str]) -> dict[str, SignedURLEntry]:
        fetched = await self._fetcher(document_ids)
        self._entries.update(fetched)
        logger.debug(
            "Fetched signed URLs",
            extra={"requested": len(document_ids), "received": len(fetched)},
        )
        return fetched

    async def get_entry(self, document_id: str) -> SignedURLEntry:
        """
        Return a valid entry, fetching a new URL if the cached one is stale.

        Raises:
            FileNotFoundError: If the backend returns no URL for the id
        """
        entry = self._fresh(document_id)
        if entry:
            return entry

        async with self._lock:
            # Double-check after acquiring lock
            entry = self._fresh(document_id)
            if entry:
                return entry
            fetched = await self._fetch([document_id])

        entry = fetched.get(document_id)
        if entry is None:
            raise FileNotFoundError(document_id)
        return entry

    async def get(self, document_id: str) -> str:
        """Signed URL for a document."""
        entry = await self.get_entry(document_id)
        return entry.url

    async def get_many(self, document_ids: list[str]) -> dict[str, str]:
        """
        Signed URLs for several documents.

        Stale and unknown ids are fetched together in one request. Ids the
        backend has no URL for are left out of the result.
        """
        async with self._lock:
            stale = [i for i in dict.fromkeys(document_ids) if self._fresh(i) is None]
            if stale:
                await self._fetch(stale)

        urls: dict[str, str] = {}
        for document_id in document_ids:
            entry = self._entries.get(document_id)
            if entry is not None:
                urls[document_id] = entry.url
        return urls

    async def refresh(self, document_id: str) -> bool:
        """Force a new URL for one document. Returns False on failure."""
        try:
            async with self._lock:
                fetched = await self._fetch([document_id])
        except BoardFilesError as e:
            logger.error(
                f"Error refreshing signed URL: {e}",
                extra={"document_id": document_id},
            )
            return False
        return document_id in fetched

    async def refresh_expired(self) -> int:
        """Re-fetch every cached entry inside its refresh buffer.

        Returns the number of URLs refreshed. Failures are logged.
        """
        async with self._lock:
            now = self._clock()
            stale = [i for i, e in self._entries.items() if e.is_stale(now, self._buffer)]
            if not stale:
                return 0
            try:
                fetched = await self._fetch(stale)
            except BoardFilesError as e:
                logger.error(
                    f"Error refreshing expired URLs: {e}",
                    extra={"expired_count": len(stale), "expired_ids": stale[:5]},
                )
                return 0
        return len(fetched)

    def invalidate(self, document_id: str) -> None:
        """Forget a document's URL (e.g. after deleting the document)."""
        self._entries.pop(document_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def _seconds_until_refresh(self) -> float | None:
        """Seconds until the earliest entry enters its refresh buffer."""
        if not self._entries:
            return None
        earliest = min(e.expires_at for e in self._entries.values())
        return (earliest - self._buffer - self._clock()).total_seconds()

    async def _auto_refresh_loop(self) -> None:
        """Refresh URLs before they expire until cancelled."""
        while True:
            delay = self._seconds_until_refresh()
            if delay is None or delay > 0:
                await asyncio.sleep(min(delay or MAX_REFRESH_SLEEP, MAX_REFRESH_SLEEP))
                continue

            await self.refresh_expired()
            await asyncio.sleep(MIN_REFRESH_INTERVAL)

    def start_auto_refresh(self) -> asyncio.Task[None]:
        """Spawn the background refresh task (idempotent)."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._auto_refresh_loop())
        return self._refresh_task

    async def stop(self) -> None:
        """Cancel the background refresh task."""
        if self._refresh_task:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None
