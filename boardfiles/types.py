"""Common annotated types for field validation.

These types provide consistent validation patterns across the SDK.
"""

from typing import Annotated

from pydantic import AfterValidator, Field

# Pattern for record identifiers (file ids, document ids, user ids)
# Alphanumeric, underscore, hyphen - must be non-empty
IDENTIFIER_PATTERN = r"^[a-zA-Z0-9_-]+$"

# Pattern for object paths inside a bucket (must not start with a slash)
STORAGE_PATH_PATTERN = r"^[^/\s][^\x00]*$"

# Pattern for document categories (upper snake case or kebab-case ids)
CATEGORY_PATTERN = r"^[A-Za-z0-9_-]+$"


def _reject_parent_segments(path: str) -> str:
    if ".." in path.split("/"):
        raise ValueError("path must not contain '..' segments")
    return path


# Local file id - key of the local file store and the upload manager
FileId = Annotated[str, Field(min_length=1, pattern=IDENTIFIER_PATTERN)]

# Document id - primary key of a document metadata row
DocumentId = Annotated[str, Field(min_length=1, pattern=IDENTIFIER_PATTERN)]

# Path of an object within a storage bucket, prevents path traversal
StoragePath = Annotated[
    str,
    Field(min_length=1, pattern=STORAGE_PATH_PATTERN),
    AfterValidator(_reject_parent_segments),
]

# Original filename as supplied by the user
Filename = Annotated[str, Field(min_length=1, max_length=255)]

# Document category
Category = Annotated[str, Field(min_length=1, pattern=CATEGORY_PATTERN)]
