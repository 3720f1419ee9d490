"""Filename cleaning and storage-name allocation.

Everything here is pure string handling: nothing touches the filesystem.
The same ``clean_path`` guards upload filenames, subdirectories and the
references handed back for deletion or download.
"""
from __future__ import annotations

import re
import uuid

from .errors import PathTraversalError

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def clean_path(token: str | None) -> str:
    """Return a normalised ``/``-separated relative path or raise.

    Redundant separators and ``.`` segments are collapsed and backslashes are
    treated as separators.  A token that contains ``..`` anywhere, is absolute,
    carries a drive prefix or control characters, or is blank is rejected with
    ``PathTraversalError``.  Nothing is stripped and retried.
    """
    if token is None or not token.strip():
        raise PathTraversalError(token or "", "empty name")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in token):
        raise PathTraversalError(token, "control character")

    unified = token.replace("\\", "/")
    if ".." in unified:
        raise PathTraversalError(token)
    if unified.startswith("/") or _DRIVE_PREFIX.match(unified):
        raise PathTraversalError(token, "absolute path")

    segments = [seg for seg in unified.split("/") if seg not in ("", ".")]
    if not segments:
        raise PathTraversalError(token, "empty name")
    return "/".join(segments)


def file_extension(filename: str | None) -> str:
    """Lower-cased, dot-prefixed extension of the last path segment, or ``""``.

    A leading dot (``.bashrc``) is a hidden name, not an extension.
    """
    if not filename:
        return ""
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    dot = base.rfind(".")
    if dot <= 0 or dot == len(base) - 1:
        return ""
    return base[dot:].lower()


def allocate_name(filename: str | None) -> str:
    # only the extension survives from the caller-supplied name
    return f"{uuid.uuid4().hex}{file_extension(filename)}"


def join_reference(subdirectory: str, name: str) -> str:
    return f"{subdirectory}/{name}"
