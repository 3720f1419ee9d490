"""File storage utilities.

This module owns the directory tree below the storage root.  Uploads are
written under randomised names so the original filename never reaches the
disk, and callers get back a ``subdirectory/name`` reference which is the
only thing accepted later to read or delete the file.

There is no locking: every store targets a freshly allocated name and
subdirectory creation tolerates concurrent creators, so the filesystem is
the only coordination point.
"""
from __future__ import annotations

import io
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from . import media_types
from .errors import (
    EmptyPayloadError,
    PathTraversalError,
    StorageIOError,
    StoredFileNotFoundError,
    UnsupportedMediaTypeError,
)
from .media_types import MediaKind
from .paths import allocate_name, clean_path, join_reference

logger = logging.getLogger("mediastore.storage")

DEFAULT_UPLOAD_DIR = "uploads"
CHUNK_SIZE = 1024 * 1024


@dataclass
class UploadPayload:
    """One incoming upload.  Filename and content type are untrusted."""

    stream: BinaryIO
    filename: Optional[str]
    content_type: Optional[str] = None
    size: Optional[int] = None


def resolve_storage_root(upload_dir: str | os.PathLike | None) -> Path:
    """Resolve ``upload_dir`` to an absolute normalised directory and create it.

    Raises ``RuntimeError`` when the directory cannot be created or written;
    the service must not start in that state.
    """
    raw = os.fspath(upload_dir) if upload_dir else DEFAULT_UPLOAD_DIR
    root = Path(os.path.abspath(raw))
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"FATAL: could not create the upload directory {root}") from exc
    if not os.access(root, os.W_OK | os.X_OK):
        raise RuntimeError(f"FATAL: the upload directory {root} is not writable")
    return root


class MediaStorage:
    def __init__(self, upload_dir: str | os.PathLike | None = None) -> None:
        self._root = resolve_storage_root(upload_dir)
        logger.info("Media storage rooted at %s", self._root)

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # store
    # ------------------------------------------------------------------
    def store(
        self,
        payload: UploadPayload,
        subdirectory: str,
        require: Optional[MediaKind] = None,
    ) -> str:
        """Write ``payload`` below ``subdirectory`` and return its reference.

        Steps run in order and each one is a hard precondition: reject an
        empty payload, clean the filename and subdirectory, check the media
        class when ``require`` is given, allocate a name, create the
        subdirectory, write the bytes.
        """
        first = b"" if payload.size == 0 else payload.stream.read(CHUNK_SIZE)
        if not first:
            raise EmptyPayloadError(payload.filename)

        original = self._clean(payload.filename, "filename")
        subdir = self._clean(subdirectory, "subdirectory")

        if require is not None and not media_types.matches(require, payload.content_type, original):
            raise UnsupportedMediaTypeError(payload.filename, payload.content_type, require.value)

        name = allocate_name(original)
        target_dir = self._root.joinpath(*subdir.split("/"))
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.exception("Could not create directory %s", target_dir)
            raise StorageIOError(
                f"Could not store file {payload.filename}. Please try again.",
                filename=payload.filename,
            ) from exc

        self._write(first, payload.stream, target_dir / name, payload.filename)
        reference = join_reference(subdir, name)
        logger.info("Stored %s as %s", original, reference)
        return reference

    def store_bytes(
        self,
        data: bytes,
        filename: str,
        subdirectory: str,
        content_type: Optional[str] = None,
        require: Optional[MediaKind] = None,
    ) -> str:
        payload = UploadPayload(io.BytesIO(data), filename, content_type, len(data))
        return self.store(payload, subdirectory, require)

    def _write(self, first: bytes, stream: BinaryIO, destination: Path, filename: str) -> None:
        # readers only ever see a complete file under the final name
        partial = destination.with_name(f".{destination.name}.part")
        try:
            with open(partial, "wb") as buffer:
                buffer.write(first)
                while True:
                    contents = stream.read(CHUNK_SIZE)
                    if not contents:
                        break
                    buffer.write(contents)
            os.replace(partial, destination)
        except OSError as exc:
            logger.exception("Failed to write %s to %s", filename, destination)
            try:
                partial.unlink()
            except FileNotFoundError:
                pass
            raise StorageIOError(
                f"Could not store file {filename}. Please try again.", filename=filename
            ) from exc

    # ------------------------------------------------------------------
    # lookup / read
    # ------------------------------------------------------------------
    def resolve(self, reference: str) -> Path:
        """Map a reference to its absolute path without touching the disk."""
        cleaned = self._clean(reference, "reference")
        path = self._root.joinpath(*cleaned.split("/"))
        normalised = Path(os.path.normpath(path))
        if normalised == self._root or not normalised.is_relative_to(self._root):
            logger.warning("Rejected reference %r outside the storage root", reference)
            raise PathTraversalError(reference, "path outside the storage root")
        return normalised

    def open(self, reference: str) -> BinaryIO:
        path = self.resolve(reference)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise StoredFileNotFoundError(reference) from exc
        except OSError as exc:
            raise StorageIOError(f"Could not read file: {reference}", filename=reference) from exc

    def size(self, reference: str) -> int:
        path = self.resolve(reference)
        try:
            info = path.stat()
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise StoredFileNotFoundError(reference) from exc
        except OSError as exc:
            raise StorageIOError(f"Could not read file: {reference}", filename=reference) from exc
        if not stat.S_ISREG(info.st_mode):
            raise StoredFileNotFoundError(reference)
        return info.st_size

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------
    def delete(self, reference: str) -> bool:
        """Remove the file behind ``reference``.

        Returns ``False`` when there was nothing to delete; that is still a
        success.
        """
        path = self.resolve(reference)
        try:
            path.unlink()
        except (FileNotFoundError, NotADirectoryError):
            logger.info("Delete of %s: already absent", reference)
            return False
        except OSError as exc:
            logger.exception("Failed to delete %s", path)
            raise StorageIOError(f"Could not delete file: {reference}", filename=reference) from exc
        logger.info("Deleted %s", reference)
        return True

    @staticmethod
    def _clean(token: Optional[str], what: str) -> str:
        try:
            return clean_path(token)
        except PathTraversalError as exc:
            logger.warning("Rejected %s %r: %s", what, token, exc.reason)
            raise
