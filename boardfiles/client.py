"""Hosted auth and storage API client.

Talks to a Supabase-style backend:
- ``/auth/v1/token`` for password and refresh-token grants
- ``/storage/v1/object/...`` for bucket operations
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from .config import DEFAULT_STORAGE_QUOTA
from .errors import AuthenticationError, ConfigError
from .storage.errors import (
    DownloadFailedError,
    FileNotFoundError,
    FileTooLargeError,
    InvalidStoragePathError,
    StorageError,
    UploadFailedError,
)
from .storage.models import (
    DownloadResult,
    ObjectInfo,
    StorageBucket,
    StorageQuota,
    UploadResult,
)
from .types import StoragePath

if TYPE_CHECKING:
    from .config import StorageConfig

logger = logging.getLogger(__name__)

# Chunk size for streamed request/response bodies (64KB)
CHUNK_SIZE = 64 * 1024

# Page size when walking bucket listings
LIST_PAGE_SIZE = 100

ProgressCallback = Callable[[int], Any]

_storage_path = TypeAdapter(StoragePath)


class AuthSession(BaseModel):
    """Tokens returned by the auth service."""

    access_token: str
    refresh_token: str | None = None
    user_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AuthSession:
        user = data.get("user") or {}
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            user_id=user.get("id"),
        )


def validate_storage_path(path: str) -> str:
    """Return ``path`` if it is a valid object path.

    Raises:
        InvalidStoragePathError: If the path is empty, absolute or
            contains ``..`` segments
    """
    try:
        return _storage_path.validate_python(path)
    except ValidationError as e:
        raise InvalidStoragePathError(path) from e


def _error_message(response: httpx.Response) -> str:
    """Extract the backend's error message, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return f"{response.status_code} - {response.text}"
    if isinstance(body, dict):
        message = body.get("message") or body.get("error_description") or body.get("error")
        if message:
            return str(message)
    return f"{response.status_code} - {response.text}"


class StorageApiClient:
    """
    HTTP client for the hosted auth and storage APIs.

    Signs in with a password grant on first use and keeps the session.
    On 401 the session is refreshed (refresh-token grant, falling back to
    a fresh password grant) and the request is retried once.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        email: str = "",
        password: str = "",
        *,
        storage_quota_bytes: int = DEFAULT_STORAGE_QUOTA,
        timeout: float = 30.0,
    ):
        if not url or not api_key:
            raise ConfigError("url and api_key are required")

        self._url = url.rstrip("/")
        self._api_key = api_key
        self._email = email
        self._password = password
        self._storage_quota_bytes = storage_quota_bytes
        self._session: AuthSession | None = None
        self._refresh_token: str | None = None
        self._lock = asyncio.Lock()
        self._http = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: StorageConfig) -> StorageApiClient:
        return cls(
            url=str(config.supabase_url),
            api_key=config.api_key,
            email=config.email,
            password=config.password,
            storage_quota_bytes=config.storage_quota_bytes,
            timeout=config.request_timeout,
        )

    @property
    def url(self) -> str:
        return self._url

    async def close(self) -> None:
        """Close HTTP client."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    async def _token_request(self, grant_type: str, body: dict[str, str]) -> AuthSession:
        try:
            response = await self._http.post(
                f"{self._url}/auth/v1/token",
                params={"grant_type": grant_type},
                headers={"apikey": self._api_key},
                json=body,
            )
        except httpx.RequestError as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Token request failed: {response.status_code} - {response.text}"
            )
        try:
            return AuthSession.from_api(response.json())
        except (ValueError, KeyError, AttributeError) as e:
            raise AuthenticationError(f"Token request failed: malformed response: {e}") from e

    async def _obtain_session(self) -> AuthSession:
        """Sign in, preferring the refresh token from an expired session."""
        if self._refresh_token:
            try:
                return await self._token_request(
                    "refresh_token", {"refresh_token": self._refresh_token}
                )
            except AuthenticationError as e:
                logger.warning(f"Session refresh failed, signing in again: {e}")
                self._refresh_token = None

        if not self._email or not self._password:
            raise AuthenticationError("Not authenticated: email and password required")

        return await self._token_request(
            "password", {"email": self._email, "password": self._password}
        )

    async def _get_session(self) -> AuthSession:
        """Get current session or obtain new one."""
        if self._session:
            return self._session

        async with self._lock:
            # Double-check after acquiring lock
            if self._session:
                return self._session
            self._session = await self._obtain_session()
            return self._session

    async def _get_token(self) -> str:
        session = await self._get_session()
        return session.access_token

    async def _clear_token(self) -> None:
        """Drop the access token (called on 401), keeping the refresh token."""
        async with self._lock:
            if self._session:
                self._refresh_token = self._session.refresh_token
            self._session = None

    async def access_token(self) -> str:
        """Bearer token of the current session, signing in if needed."""
        return await self._get_token()

    async def invalidate_session(self) -> None:
        """Force the next request to refresh the session."""
        await self._clear_token()

    async def user_id(self) -> str:
        """Id of the signed-in user."""
        session = await self._get_session()
        if not session.user_id:
            raise AuthenticationError("Not authenticated")
        return session.user_id

    def _headers(self, token: str, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"apikey": self._api_key, "Authorization": f"Bearer {token}"}
        if extra:
            headers.update(extra)
        return headers

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        content: Callable[[], Any] | None = None,
        error: Callable[[str], StorageError] = StorageError,
    ) -> httpx.Response:
        """Make request with automatic session refresh on 401.

        ``content`` is a factory so that a streamed body can be replayed on
        the retry. Transport failures are raised as ``error``.
        """
        token = await self._get_token()

        try:
            response = await self._http.request(
                method,
                url,
                headers=self._headers(token, headers),
                json=json,
                content=content() if content else None,
            )

            # Handle 401 by refreshing session and retrying once
            if response.status_code == 401:
                await self._clear_token()
                token = await self._get_token()
                response = await self._http.request(
                    method,
                    url,
                    headers=self._headers(token, headers),
                    json=json,
                    content=content() if content else None,
                )
        except httpx.RequestError as e:
            raise error(f"Request failed: {e}") from e

        return response

    @staticmethod
    def _json(
        response: httpx.Response,
        error: Callable[[str], StorageError],
        expected: type | tuple[type, ...],
    ) -> Any:
        """Decode a success body, raising ``error`` if it isn't ``expected`` JSON."""
        try:
            body = response.json()
        except ValueError as e:
            raise error(f"Invalid response body: {e}") from e
        if not isinstance(body, expected):
            raise error(f"Unexpected response body: {response.text[:200]}")
        return body

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def _object_url(self, bucket: StorageBucket | str, path: str) -> str:
        return f"{self._url}/storage/v1/object/{StorageBucket(bucket).value}/{path}"

    def public_url(self, bucket: StorageBucket | str, path: str) -> str:
        """Unsigned URL of an object in a public bucket."""
        bucket = StorageBucket(bucket)
        return f"{self._url}/storage/v1/object/public/{bucket.value}/{path}"

    async def upload_object(
        self,
        bucket: StorageBucket | str,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        upsert: bool = False,
        cache_control: str = "3600",
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """
        Upload an object to a bucket.

        POST /storage/v1/object/{bucket}/{path}

        Args:
            bucket: Target bucket
            path: Object path within the bucket
                (e.g. "{user_id}/{application_id}/{document_id}/{filename}")
            data: File content
            content_type: Optional MIME type
            upsert: Overwrite an existing object instead of failing
            cache_control: Cache-Control max-age in seconds
            on_progress: Called with the integer percentage sent (0-100)

        Returns:
            UploadResult with the stored path (and public URL for public buckets)

        Raises:
            FileTooLargeError: If data exceeds the bucket's size limit
            UploadFailedError: If the request fails
        """
        bucket = StorageBucket(bucket)
        path = validate_storage_path(path)

        if len(data) > bucket.max_size:
            raise FileTooLargeError(len(data), bucket.max_size)

        total = len(data)
        reported = -1

        def report(percent: int) -> None:
            nonlocal reported
            # Retries restart the body; keep reported progress monotone
            if on_progress is not None and percent > reported:
                reported = percent
                on_progress(percent)

        def body() -> AsyncIterator[bytes]:
            async def chunks() -> AsyncIterator[bytes]:
                sent = 0
                for offset in range(0, total, CHUNK_SIZE):
                    chunk = data[offset : offset + CHUNK_SIZE]
                    yield chunk
                    sent += len(chunk)
                    # Hold 100 back until the server has accepted the object
                    report(min(99, sent * 100 // total))

            return chunks()

        headers = {
            "Content-Length": str(total),
            "Content-Type": content_type or "application/octet-stream",
            "cache-control": f"max-age={cache_control}",
            "x-upsert": "true" if upsert else "false",
        }

        response = await self._request_with_retry(
            "POST",
            self._object_url(bucket, path),
            headers=headers,
            content=body,
            error=UploadFailedError,
        )

        if response.status_code >= 400:
            raise UploadFailedError(_error_message(response))

        key = self._json(response, UploadFailedError, dict).get("Key")
        if not key:
            raise UploadFailedError("Upload succeeded but no path was returned")

        stored_path = key.removeprefix(f"{bucket.value}/")
        url = self.public_url(bucket, stored_path) if bucket.is_public else None

        report(100)
        logger.info(
            "Uploaded object",
            extra={"bucket": bucket.value, "path": stored_path, "size": total},
        )
        return UploadResult(path=stored_path, url=url, size=total)

    async def download_object(
        self,
        bucket: StorageBucket | str,
        path: str,
    ) -> AsyncIterator[bytes]:
        """
        Download an object.

        GET /storage/v1/object/{bucket}/{path}

        Yields:
            Object content in chunks

        Raises:
            FileNotFoundError: If the object doesn't exist
            DownloadFailedError: If the request fails
        """
        path = validate_storage_path(path)
        url = self._object_url(bucket, path)

        for attempt in range(2):
            token = await self._get_token()
            try:
                async with self._http.stream("GET", url, headers=self._headers(token)) as response:
                    # Handle 401 by refreshing session and retrying once
                    if response.status_code == 401 and attempt == 0:
                        await self._clear_token()
                        continue

                    if response.status_code in (400, 404):
                        raise FileNotFoundError(f"{StorageBucket(bucket).value}/{path}")

                    if response.status_code >= 400:
                        await response.aread()
                        raise DownloadFailedError(_error_message(response))

                    async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
                        yield chunk
                    return
            except httpx.RequestError as e:
                raise DownloadFailedError(f"Request failed: {e}") from e

    async def remove_objects(self, bucket: StorageBucket | str, paths: list[str]) -> None:
        """
        Delete objects.

        DELETE /storage/v1/object/{bucket}
        """
        bucket = StorageBucket(bucket)
        response = await self._request_with_retry(
            "DELETE",
            f"{self._url}/storage/v1/object/{bucket.value}",
            json={"prefixes": [validate_storage_path(p) for p in paths]},
        )
        if response.status_code >= 400:
            raise StorageError(f"Failed to delete files: {_error_message(response)}")

    async def remove_object(self, bucket: StorageBucket | str, path: str) -> None:
        await self.remove_objects(bucket, [path])

    async def list_objects(
        self,
        bucket: StorageBucket | str,
        prefix: str = "",
        *,
        limit: int = LIST_PAGE_SIZE,
        offset: int = 0,
        sort_by: str = "created_at",
        order: str = "desc",
    ) -> list[ObjectInfo]:
        """
        List objects and folders directly under ``prefix``.

        POST /storage/v1/object/list/{bucket}
        """
        bucket = StorageBucket(bucket)
        response = await self._request_with_retry(
            "POST",
            f"{self._url}/storage/v1/object/list/{bucket.value}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": offset,
                "sortBy": {"column": sort_by, "order": order},
            },
        )
        if response.status_code >= 400:
            raise StorageError(f"Failed to list files: {_error_message(response)}")

        items = self._json(response, StorageError, (list, type(None))) or []
        return [ObjectInfo.from_api(item) for item in items]

    async def _transfer(self, action: str, bucket: StorageBucket | str, src: str, dst: str) -> None:
        response = await self._request_with_retry(
            "POST",
            f"{self._url}/storage/v1/object/{action}",
            json={
                "bucketId": StorageBucket(bucket).value,
                "sourceKey": validate_storage_path(src),
                "destinationKey": validate_storage_path(dst),
            },
        )
        if response.status_code >= 400:
            raise StorageError(f"Failed to {action} file: {_error_message(response)}")

    async def move_object(self, bucket: StorageBucket | str, from_path: str, to_path: str) -> None:
        """Move/rename an object."""
        await self._transfer("move", bucket, from_path, to_path)

    async def copy_object(self, bucket: StorageBucket | str, from_path: str, to_path: str) -> None:
        """Copy an object."""
        await self._transfer("copy", bucket, from_path, to_path)

    async def create_signed_url(
        self,
        bucket: StorageBucket | str,
        path: str,
        expires_in: int = 3600,
    ) -> DownloadResult:
        """
        Get a download URL for an object.

        POST /storage/v1/object/sign/{bucket}/{path}

        Public buckets get their unsigned URL with ``expires_in=0``.

        Raises:
            FileNotFoundError: If the object doesn't exist
            DownloadFailedError: If no URL could be generated
        """
        bucket = StorageBucket(bucket)
        path = validate_storage_path(path)

        if bucket.is_public:
            return DownloadResult(url=self.public_url(bucket, path), expires_in=0)

        response = await self._request_with_retry(
            "POST",
            f"{self._url}/storage/v1/object/sign/{bucket.value}/{path}",
            json={"expiresIn": expires_in},
            error=DownloadFailedError,
        )
        if response.status_code == 404:
            raise FileNotFoundError(f"{bucket.value}/{path}")
        if response.status_code >= 400:
            raise DownloadFailedError(
                f"Failed to create download URL: {_error_message(response)}"
            )

        signed = self._json(response, DownloadFailedError, dict).get("signedURL")
        if not signed:
            raise DownloadFailedError("Failed to generate signed URL")

        return DownloadResult(url=f"{self._url}/storage/v1{signed}", expires_in=expires_in)

    async def object_metadata(self, bucket: StorageBucket | str, path: str) -> ObjectInfo | None:
        """Metadata of an object, or None if it doesn't exist."""
        folder, _, name = validate_storage_path(path).rpartition("/")
        try:
            items = await self.list_objects(bucket, folder)
        except StorageError:
            return None
        return next((item for item in items if item.name == name), None)

    async def object_exists(self, bucket: StorageBucket | str, path: str) -> bool:
        return await self.object_metadata(bucket, path) is not None

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    async def _folder_size(self, bucket: StorageBucket, path: str) -> int:
        """Total size of all objects under ``path``, recursing into folders."""
        total = 0
        offset = 0

        while True:
            try:
                items = await self.list_objects(
                    bucket,
                    path,
                    limit=LIST_PAGE_SIZE,
                    offset=offset,
                    sort_by="name",
                    order="asc",
                )
            except StorageError as e:
                logger.error(f"Error listing files in {bucket.value}/{path}: {e}")
                break

            for item in items:
                if item.is_folder:
                    subfolder = f"{path}/{item.name}" if path else item.name
                    total += await self._folder_size(bucket, subfolder)
                elif item.size is not None:
                    total += item.size

            if len(items) < LIST_PAGE_SIZE:
                break
            offset += LIST_PAGE_SIZE

        return total

    async def get_storage_quota(self, bucket: StorageBucket | str | None = None) -> StorageQuota:
        """
        Storage used by the signed-in user's files.

        Sums object sizes under the user's folder in each private bucket.
        Failures are logged and reported as zero usage with unknown quota.
        """
        buckets = [StorageBucket(bucket)] if bucket else list(StorageBucket)

        try:
            user_id = await self.user_id()
            usage = 0
            for name in buckets:
                # Public buckets don't count toward user quota
                if name.is_public:
                    continue
                usage += await self._folder_size(name, user_id)
        except (AuthenticationError, StorageError) as e:
            logger.error(f"Error checking storage quota: {e}")
            return StorageQuota(usage=0, quota=None, percent_used=0)

        quota = self._storage_quota_bytes
        percent_used = usage / quota * 100 if quota > 0 else 0
        return StorageQuota(
            usage=usage,
            quota=quota,
            percent_used=min(percent_used, 100),
        )

