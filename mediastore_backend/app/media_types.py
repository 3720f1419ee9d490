"""Image / audio classification of uploads.

Declared MIME types from upload clients are unreliable, so each check passes
when *either* the declared type *or* the filename extension is on the
allow-list.  ``application/octet-stream`` is accepted by both classes.  No
byte sniffing happens here.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from .paths import file_extension

GENERIC_BINARY = "application/octet-stream"

IMAGE_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    GENERIC_BINARY,
})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})

AUDIO_CONTENT_TYPES = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/flac",
    "audio/x-flac",
    "audio/midi",
    "audio/x-midi",
    GENERIC_BINARY,
})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "flac", "midi", "mid"})

# extension -> content type used when serving stored files
_SERVE_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "midi": "audio/midi",
    "mid": "audio/midi",
    "zip": "application/zip",
}


class MediaKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


def _normalise_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _bare_extension(filename: Optional[str]) -> str:
    return file_extension(filename).lstrip(".")


def is_image(content_type: Optional[str], filename: Optional[str]) -> bool:
    return (
        _normalise_type(content_type) in IMAGE_CONTENT_TYPES
        or _bare_extension(filename) in IMAGE_EXTENSIONS
    )


def is_audio(content_type: Optional[str], filename: Optional[str]) -> bool:
    return (
        _normalise_type(content_type) in AUDIO_CONTENT_TYPES
        or _bare_extension(filename) in AUDIO_EXTENSIONS
    )


def matches(kind: MediaKind, content_type: Optional[str], filename: Optional[str]) -> bool:
    if kind is MediaKind.IMAGE:
        return is_image(content_type, filename)
    return is_audio(content_type, filename)


def classify(content_type: Optional[str], filename: Optional[str]) -> Optional[MediaKind]:
    """Best single class for an upload, or ``None``.

    A recognised extension decides first.  Otherwise the declared type does,
    and a generic binary upload with an unknown extension reports as an image.
    """
    ext = _bare_extension(filename)
    if ext in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if ext in AUDIO_EXTENSIONS:
        return MediaKind.AUDIO
    if is_image(content_type, filename):
        return MediaKind.IMAGE
    if is_audio(content_type, filename):
        return MediaKind.AUDIO
    return None


def guess_media_type(filename: str) -> str:
    return _SERVE_TYPES.get(_bare_extension(filename), GENERIC_BINARY)


def is_audio_name(filename: str) -> bool:
    return _bare_extension(filename) in AUDIO_EXTENSIONS
