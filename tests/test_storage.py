import io
import os
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from mediastore_backend.app.errors import (
    EmptyPayloadError,
    PathTraversalError,
    StorageError,
    StorageIOError,
    StoredFileNotFoundError,
    UnsupportedMediaTypeError,
)
from mediastore_backend.app.media_types import MediaKind
from mediastore_backend.app.storage import MediaStorage, UploadPayload

REFERENCE_RE = re.compile(r"^audio-files/[0-9a-f]{32}\.mp3$")


def make_storage(tmp_path):
    return MediaStorage(tmp_path / "uploads")


def read_back(storage, reference):
    with storage.open(reference) as f:
        return f.read()


def all_entries(storage):
    return sorted(p.relative_to(storage.root) for p in storage.root.rglob("*"))


class FailingStream:
    """Returns one chunk, then fails like a dropped client connection."""

    def __init__(self):
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls == 1:
            return b"first chunk"
        raise OSError("connection reset")


# -----------------------------
# Storage root
# -----------------------------
def test_root_is_created_with_ancestors(tmp_path):
    storage = MediaStorage(tmp_path / "a" / "b" / "c")
    assert storage.root.is_dir()
    assert storage.root.is_absolute()


def test_relative_root_resolves_against_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    storage = MediaStorage("media/./uploads")
    assert storage.root == tmp_path / "media" / "uploads"


def test_default_root_when_unset(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    storage = MediaStorage(None)
    assert storage.root == tmp_path / "uploads"


def test_uncreatable_root_is_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a directory")
    with pytest.raises(RuntimeError, match="FATAL"):
        MediaStorage(blocker / "uploads")


# -----------------------------
# Store
# -----------------------------
def test_store_then_read_is_byte_identical(tmp_path):
    storage = make_storage(tmp_path)
    data = os.urandom(4096)
    ref = storage.store_bytes(data, "Song.MP3", "audio-files", "audio/mpeg")

    assert REFERENCE_RE.match(ref), ref
    assert read_back(storage, ref) == data
    assert storage.size(ref) == len(data)


def test_store_multi_chunk_stream_without_declared_size(tmp_path):
    storage = make_storage(tmp_path)
    data = os.urandom(3 * 1024 * 1024 + 17)
    payload = UploadPayload(io.BytesIO(data), "mix.wav", "audio/wav")

    ref = storage.store(payload, "audio-files")
    assert read_back(storage, ref) == data


def test_reference_never_contains_original_name(tmp_path):
    storage = make_storage(tmp_path)
    ref = storage.store_bytes(b"png", "holiday-secret.png", "images")
    assert "holiday" not in ref
    assert ref.startswith("images/")
    assert ref.endswith(".png")


def test_name_without_extension(tmp_path):
    storage = make_storage(tmp_path)
    ref = storage.store_bytes(b"abc", "track", "audio-files")
    assert re.fullmatch(r"audio-files/[0-9a-f]{32}", ref), ref


def test_nested_subdirectory_is_normalised(tmp_path):
    storage = make_storage(tmp_path)
    ref = storage.store_bytes(b"abc", "a.mp3", "albums//42/")
    assert ref.startswith("albums/42/")
    assert read_back(storage, ref) == b"abc"


@pytest.mark.parametrize(
    "filename",
    ["../evil.mp3", "a/../../b.mp3", "..\\..\\evil.mp3", "song..mp3", "x/../../../etc/cron.d/job"],
)
def test_traversal_filename_is_rejected_and_nothing_is_written(tmp_path, filename):
    storage = make_storage(tmp_path)
    with pytest.raises(PathTraversalError):
        storage.store_bytes(b"payload", filename, "audio-files")
    assert all_entries(storage) == []
    assert sorted(p.name for p in tmp_path.iterdir()) == ["uploads"]


def test_traversal_subdirectory_is_rejected(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(PathTraversalError):
        storage.store_bytes(b"payload", "a.mp3", "../outside")
    assert not (tmp_path / "outside").exists()


def test_empty_payload_is_rejected(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(EmptyPayloadError):
        storage.store_bytes(b"", "a.mp3", "audio-files")
    with pytest.raises(EmptyPayloadError):
        storage.store(UploadPayload(io.BytesIO(b""), "a.mp3"), "audio-files")
    assert all_entries(storage) == []


def test_blank_filename_is_rejected(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(PathTraversalError):
        storage.store_bytes(b"abc", "   ", "audio-files")


def test_required_media_kind(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(UnsupportedMediaTypeError) as info:
        storage.store_bytes(b"abc", "notes.txt", "audio-files", "text/plain", require=MediaKind.AUDIO)
    assert info.value.expected == "audio"
    assert all_entries(storage) == []

    ref = storage.store_bytes(b"abc", "notes.mp3", "audio-files", "text/plain", require=MediaKind.AUDIO)
    assert ref.endswith(".mp3")


def test_write_failure_surfaces_storage_io_error(tmp_path):
    storage = make_storage(tmp_path)
    (storage.root / "images").write_bytes(b"a file where the directory should be")

    with pytest.raises(StorageIOError) as info:
        storage.store_bytes(b"abc", "cover.png", "images")
    assert info.value.filename == "cover.png"
    assert info.value.retryable


def test_write_failure_reports_the_callers_filename(tmp_path):
    storage = make_storage(tmp_path)
    (storage.root / "images").write_bytes(b"a file where the directory should be")

    with pytest.raises(StorageIOError) as info:
        storage.store_bytes(b"abc", "scans//cover.png", "images")
    assert info.value.filename == "scans//cover.png"


def test_interrupted_stream_leaves_no_file(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(StorageIOError) as info:
        storage.store(UploadPayload(FailingStream(), "live//a.mp3", "audio/mpeg"), "audio-files")
    assert info.value.filename == "live//a.mp3"
    assert list((storage.root / "audio-files").iterdir()) == []


def test_thousand_sequential_stores_are_distinct(tmp_path):
    storage = make_storage(tmp_path)
    refs = [
        storage.store_bytes(f"payload-{i}".encode(), "a.mp3", "audio-files")
        for i in range(1000)
    ]
    assert len(set(refs)) == 1000
    assert len(list((storage.root / "audio-files").iterdir())) == 1000


def test_concurrent_stores_into_new_subdirectory(tmp_path):
    storage = make_storage(tmp_path)

    def store(i):
        return storage.store_bytes(f"track-{i}".encode(), f"t{i}.mp3", "fresh-dir")

    with ThreadPoolExecutor(max_workers=50) as pool:
        refs = list(pool.map(store, range(50)))

    assert len(set(refs)) == 50
    for i, ref in enumerate(refs):
        assert read_back(storage, ref) == f"track-{i}".encode()


# -----------------------------
# Delete / lookup
# -----------------------------
def test_delete_removes_file_and_is_idempotent(tmp_path):
    storage = make_storage(tmp_path)
    ref = storage.store_bytes(b"abc", "a.mp3", "audio-files")

    assert storage.delete(ref) is True
    assert not storage.resolve(ref).exists()
    assert storage.delete(ref) is False


def test_delete_never_issued_reference(tmp_path):
    storage = make_storage(tmp_path)
    assert storage.delete("audio-files/0123456789abcdef0123456789abcdef.mp3") is False
    assert storage.delete("no-such-dir/x.mp3") is False


def test_delete_failure_surfaces_storage_io_error(tmp_path):
    storage = make_storage(tmp_path)
    storage.store_bytes(b"abc", "a.png", "images/nested")

    with pytest.raises(StorageIOError) as info:
        storage.delete("images/nested")
    assert info.value.retryable
    assert info.value.filename == "images/nested"
    assert (storage.root / "images" / "nested").is_dir()


@pytest.mark.parametrize(
    "reference",
    ["../../etc/passwd", "images/../../etc/passwd", "/etc/passwd", "..", "", "images/..hidden"],
)
def test_forged_reference_is_rejected(tmp_path, reference):
    outside = tmp_path / "keep.txt"
    outside.write_text("do not touch")
    storage = make_storage(tmp_path)

    with pytest.raises(PathTraversalError):
        storage.delete(reference)
    assert outside.read_text() == "do not touch"


def test_resolve_stays_under_root(tmp_path):
    storage = make_storage(tmp_path)
    path = storage.resolve("images//abc.png")
    assert path == storage.root / "images" / "abc.png"


def test_missing_file_lookups(tmp_path):
    storage = make_storage(tmp_path)
    with pytest.raises(StoredFileNotFoundError):
        storage.open("images/missing.png")
    with pytest.raises(StoredFileNotFoundError):
        storage.size("images/missing.png")


def test_directory_is_not_a_stored_file(tmp_path):
    storage = make_storage(tmp_path)
    storage.store_bytes(b"abc", "a.png", "images/nested")
    with pytest.raises(StoredFileNotFoundError):
        storage.size("images/nested")


def test_error_family():
    for exc_type in (EmptyPayloadError, PathTraversalError, UnsupportedMediaTypeError,
                     StorageIOError, StoredFileNotFoundError):
        assert issubclass(exc_type, StorageError)
    assert StorageIOError.retryable
    assert not PathTraversalError.retryable
