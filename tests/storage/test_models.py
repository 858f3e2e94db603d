"""Tests for storage models and errors."""

import pytest
from pydantic import ValidationError

from boardfiles import (
    BoardFilesError,
    FileNotFoundError,
    FileTooLargeError,
    InvalidStoragePathError,
    ObjectInfo,
    ObjectReference,
    StorageBucket,
    StorageError,
    StorageFullError,
    UploadFailedError,
    validate_storage_path,
)


class TestStorageBucket:
    def test_visibility(self):
        assert StorageBucket.BUILDING_ASSETS.is_public
        assert not StorageBucket.DOCUMENTS.is_public
        assert not StorageBucket.PROFILE_PHOTOS.is_public

    def test_size_limits(self):
        assert StorageBucket.PROFILE_PHOTOS.max_size == 5 * 1024 * 1024
        assert StorageBucket.DOCUMENTS.max_size == 25 * 1024 * 1024
        assert StorageBucket.BUILDING_ASSETS.max_size == 25 * 1024 * 1024

    def test_from_string(self):
        assert StorageBucket("profile-photos") is StorageBucket.PROFILE_PHOTOS


class TestObjectReference:
    """Test bucket/path references."""

    def test_parse(self):
        ref = ObjectReference.from_string("documents/user-1/app-1/doc-1/passport.pdf")

        assert ref.bucket is StorageBucket.DOCUMENTS
        assert ref.path == "user-1/app-1/doc-1/passport.pdf"
        assert ref.to_string() == "documents/user-1/app-1/doc-1/passport.pdf"

    @pytest.mark.parametrize(
        "reference",
        [
            "documents",
            "unknown-bucket/file.pdf",
            "documents//etc/passwd",
            "documents/user-1/../other/file.pdf",
            "",
        ],
    )
    def test_invalid(self, reference):
        with pytest.raises(InvalidStoragePathError):
            ObjectReference.from_string(reference)

    def test_model_rejects_traversal(self):
        with pytest.raises(ValidationError):
            ObjectReference(bucket=StorageBucket.DOCUMENTS, path="../secret")


class TestValidateStoragePath:
    def test_valid(self):
        assert validate_storage_path("user-1/app-1/doc 1/file name.pdf") == (
            "user-1/app-1/doc 1/file name.pdf"
        )

    @pytest.mark.parametrize("path", ["", "/abs/path", "a/../b", "..", " leading"])
    def test_invalid(self, path):
        with pytest.raises(InvalidStoragePathError):
            validate_storage_path(path)


class TestObjectInfo:
    def test_file_entry(self):
        info = ObjectInfo.from_api(
            {
                "name": "passport.pdf",
                "id": "obj-1",
                "created_at": "2024-03-01T12:00:00Z",
                "metadata": {"size": 100, "mimetype": "application/pdf"},
            }
        )

        assert not info.is_folder
        assert info.size == 100
        assert info.mime_type == "application/pdf"
        assert info.created_at is not None

    def test_folder_entry(self):
        info = ObjectInfo.from_api({"name": "app-1", "id": None, "metadata": None})

        assert info.is_folder
        assert info.size is None


class TestErrors:
    """Test error hierarchy and messages."""

    def test_hierarchy(self):
        assert issubclass(StorageError, BoardFilesError)
        assert issubclass(FileTooLargeError, UploadFailedError)
        assert issubclass(StorageFullError, StorageError)

    def test_file_not_found_is_not_os_error(self):
        assert not issubclass(FileNotFoundError, OSError)

    def test_messages(self):
        assert str(FileNotFoundError("documents/x.pdf")) == "File not found: documents/x.pdf"
        assert str(UploadFailedError("boom")) == "Upload failed: boom"
        assert str(FileTooLargeError(6 * 1024 * 1024, 5 * 1024 * 1024)) == (
            "Upload failed: File size exceeds maximum of 5MB"
        )
        assert str(InvalidStoragePathError("../x")) == "Invalid storage path: ../x"

    def test_storage_full_attributes(self):
        error = StorageFullError(required=100, available=10)

        assert error.required == 100
        assert error.available == 10
        assert "100 bytes required" in str(error)
