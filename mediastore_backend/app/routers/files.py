from __future__ import annotations

import logging
import re
from typing import BinaryIO, Iterator, Optional, Tuple

from fastapi import APIRouter, Depends, File, Header, HTTPException, Response, UploadFile, status
from fastapi.responses import StreamingResponse

from .. import compression, media_types, schemas
from ..core.config import Settings
from ..deps import get_settings, get_storage
from ..errors import (
    EmptyPayloadError,
    PathTraversalError,
    StorageError,
    StorageIOError,
    StoredFileNotFoundError,
    UnsupportedMediaTypeError,
)
from ..media_types import MediaKind
from ..storage import CHUNK_SIZE, MediaStorage, UploadPayload

logger = logging.getLogger("mediastore.files")

router = APIRouter(prefix="/api/files", tags=["files"])

AUDIO_SUBDIRECTORY = "audio-files"
IMAGE_SUBDIRECTORY = "images"

_RANGE_RE = re.compile(r"bytes=(\d*)-(\d*)")

_STATUS_BY_ERROR = {
    EmptyPayloadError: status.HTTP_400_BAD_REQUEST,
    PathTraversalError: status.HTTP_400_BAD_REQUEST,
    UnsupportedMediaTypeError: status.HTTP_400_BAD_REQUEST,
    StoredFileNotFoundError: status.HTTP_404_NOT_FOUND,
    StorageIOError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _http_error(exc: StorageError) -> HTTPException:
    code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail=str(exc))


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def _store_upload(
    upload: UploadFile,
    storage: MediaStorage,
    kind: MediaKind,
    subdirectory: str,
    max_bytes: int,
    type_error: str,
    app_settings: Settings,
) -> schemas.UploadResponse:
    size = _upload_size(upload)
    detected = media_types.classify(upload.content_type, upload.filename)
    logger.info(
        "Received %s upload: %s content_type=%s detected=%s size=%s",
        kind.value, upload.filename, upload.content_type,
        detected.value if detected else "unknown", size,
    )

    if size > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File must not exceed {max_bytes // (1024 * 1024)}MB",
        )

    upload.file.seek(0)
    payload = UploadPayload(upload.file, upload.filename, upload.content_type, size)
    try:
        reference = storage.store(payload, subdirectory, require=kind)
    except UnsupportedMediaTypeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=type_error)
    except StorageError as exc:
        raise _http_error(exc)

    return schemas.UploadResponse(
        message=f"{kind.value.capitalize()} file uploaded successfully",
        file_url=app_settings.file_url(reference),
        file_path=reference,
        file_name=upload.filename,
        file_size=size,
    )


@router.post("/upload/audio", response_model=schemas.UploadResponse)
def upload_audio_file(
    file: UploadFile = File(...),
    storage: MediaStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    return _store_upload(
        file, storage, MediaKind.AUDIO, AUDIO_SUBDIRECTORY,
        app_settings.max_audio_bytes,
        "File must be an audio file (MP3, WAV, FLAC, MIDI)",
        app_settings,
    )


@router.post("/upload/image", response_model=schemas.UploadResponse)
def upload_image_file(
    file: UploadFile = File(...),
    storage: MediaStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    return _store_upload(
        file, storage, MediaKind.IMAGE, IMAGE_SUBDIRECTORY,
        app_settings.max_image_bytes,
        "File must be an image (JPG, PNG, GIF, WEBP)",
        app_settings,
    )


# =========================
# Compression
# =========================
@router.post(
    "/compress",
    response_model=schemas.CompressResponse,
    response_model_exclude_none=True,
)
def compress_files(
    req: schemas.CompressRequest,
    storage: MediaStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    if not req.file_paths:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one file path is required for compression",
        )
    try:
        file_paths = compression.unique_references(storage, req.file_paths)
        original_size = compression.total_size(storage, file_paths)
        zip_ref = compression.compress_files(storage, file_paths)
        compressed_size = storage.size(zip_ref)
    except StorageError as exc:
        raise _http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    stats = compression.compression_stats(original_size, compressed_size)
    return schemas.CompressResponse(
        message="Files compressed successfully",
        zip_file_url=app_settings.file_url(zip_ref),
        zip_file_path=zip_ref,
        files_compressed=len(file_paths),
        original_size=stats["originalSize"],
        compressed_size=stats["compressedSize"],
        compression_ratio=stats["compressionRatio"],
    )


@router.post(
    "/compress/single",
    response_model=schemas.CompressResponse,
    response_model_exclude_none=True,
)
def compress_single_file(
    req: schemas.CompressSingleRequest,
    storage: MediaStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    if not req.file_path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A file path is required",
        )
    try:
        original_size = storage.size(req.file_path)
        zip_ref = compression.compress_single_file(storage, req.file_path)
        compressed_size = storage.size(zip_ref)
    except StorageError as exc:
        raise _http_error(exc)

    stats = compression.compression_stats(original_size, compressed_size)
    return schemas.CompressResponse(
        message="File compressed successfully",
        zip_file_url=app_settings.file_url(zip_ref),
        zip_file_path=zip_ref,
        original_size=stats["originalSize"],
        compressed_size=stats["compressedSize"],
        compression_ratio=stats["compressionRatio"],
    )


# =========================
# Serving / deletion
# =========================
def parse_range(header: str, file_size: int) -> Optional[Tuple[int, int]]:
    """First byte range of a ``Range`` header as inclusive ``(start, end)``.

    Returns ``None`` for anything unparseable or unsatisfiable, in which case
    the caller serves the whole file.
    """
    match = _RANGE_RE.fullmatch(header.strip())
    if not match or file_size <= 0:
        return None
    start_s, end_s = match.groups()
    if start_s:
        start = int(start_s)
        end = int(end_s) if end_s else file_size - 1
    elif end_s:
        suffix = int(end_s)
        if suffix == 0:
            return None
        start = max(file_size - suffix, 0)
        end = file_size - 1
    else:
        return None
    end = min(end, file_size - 1)
    if start > end:
        return None
    return start, end


def _iter_file(handle: BinaryIO, start: int, length: int) -> Iterator[bytes]:
    try:
        handle.seek(start)
        remaining = length
        while remaining > 0:
            chunk = handle.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        handle.close()


@router.get("/{subdirectory}/{filename}")
def serve_file(
    subdirectory: str,
    filename: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    storage: MediaStorage = Depends(get_storage),
):
    reference = f"{subdirectory}/{filename}"
    try:
        file_size = storage.size(reference)
        handle = storage.open(reference)
    except StorageError as exc:
        raise _http_error(exc)

    content_type = media_types.guess_media_type(filename)
    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": f'inline; filename="{filename}"',
    }

    byte_range = None
    if range_header and media_types.is_audio_name(filename):
        byte_range = parse_range(range_header, file_size)

    if byte_range is None:
        headers["Content-Length"] = str(file_size)
        return StreamingResponse(
            _iter_file(handle, 0, file_size), media_type=content_type, headers=headers
        )

    start, end = byte_range
    length = end - start + 1
    headers["Content-Length"] = str(length)
    headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
    return StreamingResponse(
        _iter_file(handle, start, length),
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        media_type=content_type,
        headers=headers,
    )


@router.delete("/{subdirectory}/{filename}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(
    subdirectory: str,
    filename: str,
    storage: MediaStorage = Depends(get_storage),
):
    try:
        storage.delete(f"{subdirectory}/{filename}")
    except StorageError as exc:
        raise _http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
