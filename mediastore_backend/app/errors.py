"""Typed failures raised by the media storage layer.

Every failure the storage layer can report derives from ``StorageError`` so
callers can catch the whole family, or branch on the concrete class.  The
``retryable`` flag separates transient I/O trouble from caller bugs.
"""
from __future__ import annotations

from typing import Optional


class StorageError(Exception):
    """Base class for storage failures."""

    retryable = False


class EmptyPayloadError(StorageError):
    """The upload carried zero bytes."""

    def __init__(self, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(f"Uploaded file is empty: {filename}")


class PathTraversalError(StorageError):
    """A filename, subdirectory or reference tried to leave the storage root."""

    def __init__(self, token: str, reason: str = "invalid path sequence"):
        self.token = token
        self.reason = reason
        super().__init__(f"Path contains an {reason}: {token!r}")


class UnsupportedMediaTypeError(StorageError):
    def __init__(self, filename: Optional[str], content_type: Optional[str], expected: str):
        self.filename = filename
        self.content_type = content_type
        self.expected = expected
        super().__init__(
            f"File {filename!r} ({content_type}) is not a supported {expected} file"
        )


class StorageIOError(StorageError):
    """The filesystem refused a write, read or delete."""

    retryable = True

    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(message)


class StoredFileNotFoundError(StorageError):
    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"File not found: {reference}")
