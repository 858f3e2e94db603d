"""Storage error types."""

from ..errors import BoardFilesError


class StorageError(BoardFilesError):
    """Base exception for storage operations."""


class FileNotFoundError(StorageError):
    """File not found in storage."""

    def __init__(self, file_ref: str):
        super().__init__(f"File not found: {file_ref}")
        self.file_ref = file_ref


class UploadFailedError(StorageError):
    """File upload failed."""

    def __init__(self, message: str):
        super().__init__(f"Upload failed: {message}")


class FileTooLargeError(UploadFailedError):
    """File exceeds the size limit of its bucket."""

    def __init__(self, size: int, max_size: int):
        super().__init__(
            f"File size exceeds maximum of {max_size // (1024 * 1024)}MB"
        )
        self.size = size
        self.max_size = max_size


class DownloadFailedError(StorageError):
    """File download failed."""

    def __init__(self, message: str):
        super().__init__(f"Download failed: {message}")


class StorageFullError(StorageError):
    """Local storage quota exceeded."""

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Storage full: {required} bytes required, {available} bytes available"
        )
        self.required = required
        self.available = available


class InvalidStoragePathError(StorageError):
    """Invalid object path."""

    def __init__(self, path: str):
        super().__init__(f"Invalid storage path: {path}")
        self.path = path
