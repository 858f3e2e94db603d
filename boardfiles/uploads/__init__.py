"""Upload tracking with pause, resume and cancel."""

from .manager import UploadManager
from .task import UploadStatus, UploadTask

__all__ = ["UploadManager", "UploadStatus", "UploadTask"]
