"""Tests for the portal document client and uploader."""

import json
import re
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from pytest_httpx import HTTPXMock

from boardfiles import (
    ApiError,
    CreateDocumentInput,
    DocumentApiClient,
    DocumentCategory,
    DocumentStatus,
    DocumentUploader,
    StorageApiClient,
    UploadFailedError,
    build_document_path,
)

STORAGE_URL = "http://localhost:54321"
API_URL = "http://localhost:3000"
PASSWORD_GRANT_URL = f"{STORAGE_URL}/auth/v1/token?grant_type=password"
REFRESH_GRANT_URL = f"{STORAGE_URL}/auth/v1/token?grant_type=refresh_token"

DOCUMENT_JSON = {
    "id": "doc-1",
    "category": "GOVERNMENT_ID",
    "filename": "passport.pdf",
    "size": 2048,
    "mimeType": "application/pdf",
    "uploadedAt": "2024-03-01T12:00:00Z",
    "uploadedBy": "user-1",
    "status": "UPLOADED",
    "notes": None,
}


def add_token(httpx_mock: HTTPXMock, token: str = "token"):
    httpx_mock.add_response(
        method="POST",
        url=PASSWORD_GRANT_URL,
        json={"access_token": token, "refresh_token": "refresh-1", "user": {"id": "user-1"}},
    )


@pytest_asyncio.fixture
async def storage():
    client = StorageApiClient(
        url=STORAGE_URL,
        api_key="anon-key",
        email="applicant@example.com",
        password="secret",
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def documents(storage):
    client = DocumentApiClient(API_URL, storage)
    yield client
    await client.close()


class TestBuildDocumentPath:
    def test_layout(self):
        assert build_document_path("u", "a", "d", "passport.pdf") == "u/a/d/passport.pdf"

    def test_separators_in_filename_are_replaced(self):
        assert build_document_path("u", "a", "d", "../x\\y.pdf") == "u/a/d/.._x_y.pdf"


class TestDocumentApiClient:
    """Test the portal document endpoints."""

    @pytest.mark.asyncio
    async def test_list_documents(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="GET",
            url=f"{API_URL}/api/applications/app-1/documents",
            json=[DOCUMENT_JSON],
        )

        docs = await documents.list_documents("app-1")

        assert len(docs) == 1
        doc = docs[0]
        assert doc.id == "doc-1"
        assert doc.category is DocumentCategory.GOVERNMENT_ID
        assert doc.status is DocumentStatus.UPLOADED
        assert doc.mime_type == "application/pdf"
        assert doc.uploaded_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

        request = httpx_mock.get_requests()[-1]
        assert request.headers["Authorization"] == "Bearer token"

    @pytest.mark.asyncio
    async def test_create_document_posts_metadata(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="POST",
            url=f"{API_URL}/api/applications/app-1/documents",
            json=DOCUMENT_JSON,
        )

        doc = await documents.create_document(
            "app-1",
            CreateDocumentInput(
                filename="passport.pdf",
                category=DocumentCategory.GOVERNMENT_ID,
                size=2048,
                mime_type="application/pdf",
                storage_path="user-1/app-1/doc-1/passport.pdf",
            ),
        )

        assert doc.id == "doc-1"
        body = json.loads(httpx_mock.get_requests()[-1].content)
        assert body == {
            "filename": "passport.pdf",
            "category": "GOVERNMENT_ID",
            "size": 2048,
            "mime_type": "application/pdf",
            "storage_path": "user-1/app-1/doc-1/passport.pdf",
        }

    @pytest.mark.asyncio
    async def test_delete_error_raises_api_error(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="DELETE",
            url=f"{API_URL}/api/documents/doc-1",
            status_code=403,
            json={"error": "Forbidden"},
        )

        with pytest.raises(ApiError, match="Forbidden") as exc_info:
            await documents.delete_document("doc-1")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_retries_once_on_401(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock, token="old_token")
        httpx_mock.add_response(
            method="DELETE",
            url=f"{API_URL}/api/documents/doc-1",
            status_code=401,
        )
        httpx_mock.add_response(
            method="POST",
            url=REFRESH_GRANT_URL,
            json={"access_token": "new_token", "refresh_token": "refresh-2"},
        )
        httpx_mock.add_response(
            method="DELETE",
            url=f"{API_URL}/api/documents/doc-1",
            status_code=204,
        )

        await documents.delete_document("doc-1")

        deletes = [r for r in httpx_mock.get_requests() if r.method == "DELETE"]
        assert [r.headers["Authorization"] for r in deletes] == [
            "Bearer old_token",
            "Bearer new_token",
        ]


class TestFetchSignedUrls:
    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, documents):
        assert await documents.fetch_signed_urls([]) == {}

    @pytest.mark.asyncio
    async def test_batch_request(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="POST",
            url=f"{API_URL}/api/documents/signed-urls",
            json={
                "urls": [
                    {
                        "id": "doc-1",
                        "url": "https://cdn.example.com/doc-1?token=a",
                        "expiresAt": "2024-03-01T13:00:00Z",
                    },
                    {"id": "doc-2", "url": None, "expiresAt": "2024-03-01T13:00:00Z"},
                ]
            },
        )

        entries = await documents.fetch_signed_urls(["doc-1", "doc-2"])

        assert list(entries) == ["doc-1"]
        assert entries["doc-1"].url == "https://cdn.example.com/doc-1?token=a"
        assert entries["doc-1"].expires_at == datetime(2024, 3, 1, 13, 0, tzinfo=timezone.utc)

        body = json.loads(httpx_mock.get_requests()[-1].content)
        assert body == {"documentIds": ["doc-1", "doc-2"]}

    @pytest.mark.asyncio
    async def test_error_raises_api_error(self, httpx_mock: HTTPXMock, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="POST",
            url=f"{API_URL}/api/documents/signed-urls",
            status_code=500,
            text="oops",
        )

        with pytest.raises(ApiError, match="Failed to fetch signed URLs"):
            await documents.fetch_signed_urls(["doc-1"])


class TestDocumentUploader:
    """Test upload then metadata registration."""

    @pytest.mark.asyncio
    async def test_upload_document(self, httpx_mock: HTTPXMock, storage, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="POST",
            url=re.compile(
                rf"{STORAGE_URL}/storage/v1/object/documents/user-1/app-1/[0-9a-f-]+/lease\.pdf"
            ),
            json={"Key": "documents/user-1/app-1/doc-9/lease.pdf"},
        )
        httpx_mock.add_response(
            method="POST",
            url=f"{API_URL}/api/applications/app-1/documents",
            json={**DOCUMENT_JSON, "id": "doc-9", "filename": "lease.pdf"},
        )
        progress: list[int] = []

        uploader = DocumentUploader(storage, documents)
        doc = await uploader.upload_document(
            "app-1",
            b"%PDF lease",
            "lease.pdf",
            "OTHER",
            on_progress=progress.append,
        )

        assert doc.id == "doc-9"
        assert progress[-1] == 100

        upload = [r for r in httpx_mock.get_requests() if "storage/v1/object" in str(r.url)][0]
        assert upload.headers["Content-Type"] == "application/pdf"
        assert upload.headers["x-upsert"] == "false"

        body = json.loads(httpx_mock.get_requests()[-1].content)
        assert body["storage_path"] == "user-1/app-1/doc-9/lease.pdf"
        assert body["category"] == "OTHER"
        assert body["size"] == len(b"%PDF lease")

    @pytest.mark.asyncio
    async def test_upload_failure_skips_metadata(self, httpx_mock: HTTPXMock, storage, documents):
        add_token(httpx_mock)
        httpx_mock.add_response(
            method="POST",
            url=re.compile(rf"{STORAGE_URL}/storage/v1/object/documents/.*"),
            status_code=500,
            json={"message": "storage unavailable"},
        )

        uploader = DocumentUploader(storage, documents)
        with pytest.raises(UploadFailedError, match="storage unavailable"):
            await uploader.upload_document("app-1", b"data", "id.pdf", DocumentCategory.OTHER)

        assert not [r for r in httpx_mock.get_requests() if API_URL in str(r.url)]
