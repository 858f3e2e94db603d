"""SDK error types."""


class BoardFilesError(Exception):
    """Base class for boardfiles errors."""


class ConfigError(BoardFilesError):
    """Configuration error."""


class AuthenticationError(BoardFilesError):
    """Authentication failed."""


class ApiError(BoardFilesError):
    """Portal API request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
