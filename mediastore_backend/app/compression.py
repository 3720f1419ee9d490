"""On-demand ZIP bundles of stored files.

Archives are built in a temporary file and then handed to
``MediaStorage.store`` so they land under ``compressed/`` with a generated
name, exactly like an upload.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from typing import Dict, List, Sequence

from .storage import MediaStorage, UploadPayload

logger = logging.getLogger("mediastore.compression")

COMPRESSED_SUBDIRECTORY = "compressed"


def unique_references(storage: MediaStorage, references: Sequence[str]) -> List[str]:
    """Drop references naming a file already listed, keeping first-seen order.

    ``images/a.png`` and ``images//a.png`` are the same file.  Two different
    files sharing a base name would collide as archive entries and are
    rejected with ``ValueError``.
    """
    seen_paths = set()
    seen_names: Dict[str, str] = {}
    unique: List[str] = []
    for reference in references:
        path = storage.resolve(reference)
        if path in seen_paths:
            continue
        if path.name in seen_names:
            raise ValueError(
                f"{reference} and {seen_names[path.name]} share the archive entry name {path.name}"
            )
        seen_paths.add(path)
        seen_names[path.name] = reference
        unique.append(reference)
    return unique


def compress_files(storage: MediaStorage, references: Sequence[str]) -> str:
    """Zip the files behind ``references`` and return the archive's reference.

    Each entry is named after the stored file's own name and each file goes
    in once, however often it is listed.  Raises ``StoredFileNotFoundError``
    if any reference has no file behind it.
    """
    if not references:
        raise ValueError("At least one file is required for compression")
    references = unique_references(storage, references)

    with tempfile.TemporaryFile() as spool:
        with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for reference in references:
                entry_name = storage.resolve(reference).name
                with storage.open(reference) as source, archive.open(entry_name, "w") as target:
                    shutil.copyfileobj(source, target)
        size = spool.tell()
        spool.seek(0)
        archive_ref = storage.store(
            UploadPayload(spool, "archive.zip", "application/zip", size),
            COMPRESSED_SUBDIRECTORY,
        )

    logger.info("Compressed %d file(s) into %s", len(references), archive_ref)
    return archive_ref


def compress_single_file(storage: MediaStorage, reference: str) -> str:
    return compress_files(storage, [reference])


def compression_stats(original_size: int, compressed_size: int) -> Dict[str, object]:
    ratio = 0.0
    if original_size > 0:
        ratio = (original_size - compressed_size) / original_size * 100
    return {
        "originalSize": original_size,
        "compressedSize": compressed_size,
        "compressionRatio": f"{ratio:.2f}%",
    }


def total_size(storage: MediaStorage, references: Sequence[str]) -> int:
    return sum(storage.size(ref) for ref in unique_references(storage, references))
