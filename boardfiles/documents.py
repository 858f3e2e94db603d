"""Portal API client for document metadata.

Documents are stored in the ``documents`` bucket under
``{user_id}/{application_id}/{document_id}/{filename}``; the portal keeps a
metadata row per document and issues signed download URLs in batches.
"""

from __future__ import annotations

import logging
import mimetypes
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import ApiError, BoardFilesError
from .storage.models import SignedURLEntry, StorageBucket
from .types import DocumentId, Filename

if TYPE_CHECKING:
    from .client import ProgressCallback, StorageApiClient

logger = logging.getLogger(__name__)


class DocumentCategory(str, Enum):
    GOVERNMENT_ID = "GOVERNMENT_ID"
    BANK_STATEMENT = "BANK_STATEMENT"
    TAX_RETURN = "TAX_RETURN"
    REFERENCE_LETTER = "REFERENCE_LETTER"
    BUILDING_FORM = "BUILDING_FORM"
    PAYSTUB = "PAYSTUB"
    W2 = "W2"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class Document(BaseModel):
    """Document metadata row as returned by the portal (camelCase JSON)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: DocumentId
    category: DocumentCategory
    filename: Filename
    size: int
    mime_type: str
    uploaded_at: datetime
    uploaded_by: str
    status: DocumentStatus
    notes: str | None = None


class CreateDocumentInput(BaseModel):
    """Body for creating a metadata row after the object is stored."""

    filename: Filename
    category: DocumentCategory
    size: int
    mime_type: str
    storage_path: str


def build_document_path(
    user_id: str,
    application_id: str,
    document_id: str,
    filename: str,
) -> str:
    """Storage path of a document: ``user/application/document/filename``."""
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"{user_id}/{application_id}/{document_id}/{safe_name}"


def _api_error(response: httpx.Response, default: str) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = None
    message = body.get("message") or body.get("error") if isinstance(body, dict) else None
    return ApiError(message or default, status_code=response.status_code)


class DocumentApiClient:
    """
    HTTP client for the portal's document endpoints.

    Authenticates with the bearer token of a ``StorageApiClient`` session;
    a 401 invalidates that session and the request is retried once.
    """

    def __init__(self, api_url: str, auth: StorageApiClient, *, timeout: float = 30.0):
        self._api_url = api_url.rstrip("/")
        self._auth = auth
        self._http = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._http.aclose()

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        json: Any = None,
    ) -> httpx.Response:
        """Make request with automatic session refresh on 401."""
        token = await self._auth.access_token()

        try:
            response = await self._http.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                json=json,
            )

            # Handle 401 by refreshing session and retrying once
            if response.status_code == 401:
                await self._auth.invalidate_session()
                token = await self._auth.access_token()
                response = await self._http.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    json=json,
                )
        except httpx.RequestError as e:
            raise ApiError(f"Request failed: {e}") from e

        return response

    async def list_documents(self, application_id: str) -> list[Document]:
        """
        Documents of an application, newest first.

        GET /api/applications/{application_id}/documents
        """
        response = await self._request_with_retry(
            "GET",
            f"{self._api_url}/api/applications/{application_id}/documents",
        )
        if response.status_code >= 400:
            raise _api_error(response, "Failed to fetch documents")
        return [Document.model_validate(d) for d in response.json()]

    async def create_document(
        self,
        application_id: str,
        metadata: CreateDocumentInput,
    ) -> Document:
        """
        Create a metadata row for an uploaded object.

        POST /api/applications/{application_id}/documents
        """
        response = await self._request_with_retry(
            "POST",
            f"{self._api_url}/api/applications/{application_id}/documents",
            json=metadata.model_dump(mode="json"),
        )
        if response.status_code >= 400:
            raise _api_error(response, "Failed to create document")
        return Document.model_validate(response.json())

    async def delete_document(self, document_id: str) -> None:
        """
        Delete a document.

        DELETE /api/documents/{document_id}
        """
        response = await self._request_with_retry(
            "DELETE",
            f"{self._api_url}/api/documents/{document_id}",
        )
        if response.status_code >= 400:
            raise _api_error(response, "Failed to delete document")

    async def fetch_signed_urls(self, document_ids: list[str]) -> dict[str, SignedURLEntry]:
        """
        Signed download URLs for several documents in one request.

        POST /api/documents/signed-urls

        Documents the portal returns no URL for are left out.
        """
        if not document_ids:
            return {}

        response = await self._request_with_retry(
            "POST",
            f"{self._api_url}/api/documents/signed-urls",
            json={"documentIds": document_ids},
        )
        if response.status_code >= 400:
            logger.error(
                "Error fetching signed URLs",
                extra={
                    "document_count": len(document_ids),
                    "document_ids": document_ids[:5],
                    "status_code": response.status_code,
                },
            )
            raise _api_error(response, "Failed to fetch signed URLs")

        entries: dict[str, SignedURLEntry] = {}
        for item in response.json().get("urls", []):
            if item.get("url"):
                entries[item["id"]] = SignedURLEntry(
                    document_id=item["id"],
                    url=item["url"],
                    expires_at=item["expiresAt"],
                )
        return entries


class DocumentUploader:
    """Uploads a file to storage and registers its metadata row."""

    def __init__(self, storage: StorageApiClient, documents: DocumentApiClient):
        self._storage = storage
        self._documents = documents

    async def upload_document(
        self,
        application_id: str,
        data: bytes,
        filename: str,
        category: DocumentCategory | str,
        *,
        mime_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Document:
        """
        Upload a document for an application.

        Raises:
            BoardFilesError: If the upload or the metadata request fails
        """
        mime_type = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        category = DocumentCategory(category)

        try:
            user_id = await self._storage.user_id()
            path = build_document_path(user_id, application_id, str(uuid4()), filename)
            result = await self._storage.upload_object(
                StorageBucket.DOCUMENTS,
                path,
                data,
                content_type=mime_type,
                upsert=False,
                cache_control="3600",
                on_progress=on_progress,
            )
            return await self._documents.create_document(
                application_id,
                CreateDocumentInput(
                    filename=filename,
                    category=category,
                    size=len(data),
                    mime_type=mime_type,
                    storage_path=result.path,
                ),
            )
        except BoardFilesError as e:
            logger.error(
                f"Upload failed: {e}",
                extra={
                    "file_name": filename,
                    "file_size": len(data),
                    "mime_type": mime_type,
                    "application_id": application_id,
                    "category": category.value,
                },
            )
            raise
