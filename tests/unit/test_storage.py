"""Unit tests for the EncryptedFileStore."""

import gc
import io
import os
import stat
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from strongbox.core.exceptions import (
    DecodingError,
    InitializationError,
    NotFoundError,
    PersistenceError,
    StorageError,
)
from strongbox.core.storage import EncryptedFileStore
from strongbox.security.cipher import NONCE_SIZE, SymmetricCipher

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")


@pytest.fixture
def cipher():
    return SymmetricCipher(b"\x07" * 32)


@pytest.fixture
def store(tmp_path, cipher):
    """Return a store rooted in a not-yet-existing directory."""
    return EncryptedFileStore(tmp_path / "files", cipher)


# --- Bootstrap ---

def test_bootstrap_creates_nested_directory(tmp_path, cipher):
    root = tmp_path / "a" / "b" / "files"
    EncryptedFileStore(root, cipher)
    assert root.is_dir()


@posix_only
def test_bootstrap_created_parents_are_owner_only(tmp_path, cipher):
    old_umask = os.umask(0o022)
    try:
        EncryptedFileStore(tmp_path / "a" / "b" / "files", cipher)
    finally:
        os.umask(old_umask)

    for path in (tmp_path / "a", tmp_path / "a" / "b", tmp_path / "a" / "b" / "files"):
        assert stat.S_IMODE(path.stat().st_mode) == 0o700


def test_bootstrap_below_a_file_is_fatal(tmp_path, cipher):
    (tmp_path / "blocker").write_bytes(b"x")
    with pytest.raises(InitializationError):
        EncryptedFileStore(tmp_path / "blocker" / "files", cipher)


@posix_only
def test_bootstrap_directory_is_owner_only(store):
    assert stat.S_IMODE(store.root.stat().st_mode) == 0o700


def test_bootstrap_accepts_existing_directory(tmp_path, cipher):
    (tmp_path / "files").mkdir()
    EncryptedFileStore(tmp_path / "files", cipher)


def test_bootstrap_failure_is_fatal(tmp_path, cipher):
    blocker = tmp_path / "files"
    blocker.write_bytes(b"not a directory")
    with pytest.raises(InitializationError):
        EncryptedFileStore(blocker, cipher)


# --- Save / Load ---

def test_save_load_roundtrip(store):
    data = b"\xff\xd8\xff\xe0 some jpeg bytes"
    assert store.save("blob1", data) == len(data)
    assert store.load("blob1") == data


def test_save_from_file_object(store):
    assert store.save("blob1", io.BytesIO(b"streamed upload")) == 15
    assert store.load("blob1") == b"streamed upload"


def test_blob_on_disk_is_encrypted(store):
    data = b"plaintext that must never hit the disk"
    store.save("blob1", data)

    raw = store.blob_path("blob1").read_bytes()
    assert len(raw) == NONCE_SIZE + len(data)
    assert data not in raw


@posix_only
def test_blob_is_owner_read_write_only(store):
    store.save("blob1", b"data")
    assert stat.S_IMODE(store.blob_path("blob1").stat().st_mode) == 0o600


def test_save_overwrites(store):
    store.save("blob1", b"first")
    store.save("blob1", b"second version")
    assert store.load("blob1") == b"second version"


def test_save_leaves_no_temporary_files(store):
    store.save("blob1", b"data")
    store.save("blob1", b"more data")
    assert sorted(p.name for p in store.root.iterdir()) == ["blob1"]


def test_failed_write_keeps_old_blob_and_cleans_up(store):
    store.save("blob1", b"original")
    with patch("strongbox.core.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StorageError, match="disk full"):
            store.save("blob1", b"replacement")

    assert store.load("blob1") == b"original"
    assert sorted(p.name for p in store.root.iterdir()) == ["blob1"]


def test_unreadable_source_raises_storage_error(store):
    source = Mock()
    source.read.side_effect = OSError("connection reset")
    with pytest.raises(StorageError):
        store.save("blob1", source)
    assert not store.exists("blob1")


def test_load_missing_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.load("nope")


def test_load_truncated_blob_raises_decoding_error(store):
    store.blob_path("short").write_bytes(b"\x00" * (NONCE_SIZE - 1))
    with pytest.raises(DecodingError):
        store.load("short")


def test_concurrent_writers_leave_one_complete_blob(store):
    payloads = [bytes([i]) * 10_000 for i in range(8)]
    threads = [threading.Thread(target=store.save, args=("shared", p)) for p in payloads]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.load("shared") in payloads
    assert sorted(p.name for p in store.root.iterdir()) == ["shared"]


@pytest.mark.parametrize("blob_id", ["", "../escape", "a/b", ".hidden", "nul\x00byte"])
def test_invalid_blob_ids_rejected(store, blob_id):
    with pytest.raises(StorageError, match="Invalid blob identifier"):
        store.save(blob_id, b"data")


def test_exists(store):
    assert store.exists("blob1") is False
    store.save("blob1", b"x")
    assert store.exists("blob1") is True


# --- Delete ---

def test_delete_removes_record_and_blob(store):
    store.save("blob1", b"data")
    delete_record = Mock()

    store.delete(42, "blob1", delete_record)

    delete_record.assert_called_once_with(42)
    assert not store.exists("blob1")
    with pytest.raises(NotFoundError):
        store.load("blob1")
    assert list(store.root.iterdir()) == []


def test_delete_restores_blob_when_record_delete_fails(store):
    store.save("blob1", b"data")
    delete_record = Mock(side_effect=PersistenceError("database is locked"))

    with pytest.raises(PersistenceError, match="database is locked"):
        store.delete(42, "blob1", delete_record)

    assert store.load("blob1") == b"data"
    assert sorted(p.name for p in store.root.iterdir()) == ["blob1"]


def test_delete_missing_blob_still_removes_record(store):
    delete_record = Mock()
    with pytest.raises(NotFoundError):
        store.delete(42, "ghost", delete_record)
    delete_record.assert_called_once_with(42)


def test_delete_reports_orphan_when_unlink_fails(store):
    store.save("blob1", b"data")
    delete_record = Mock()

    with patch.object(Path, "unlink", side_effect=OSError("device busy")):
        with pytest.raises(StorageError, match="Orphaned blob"):
            store.delete(42, "blob1", delete_record)

    delete_record.assert_called_once_with(42)
    assert (store.root / ".blob1.deleting").exists()


def test_delete_keeps_record_error_when_restore_fails(store, caplog):
    store.save("blob1", b"data")
    delete_record = Mock(side_effect=PersistenceError("database is locked"))
    real_replace = os.replace
    calls = []

    def replace(src, dst):
        calls.append((src, dst))
        if len(calls) == 2:
            raise OSError("read-only filesystem")
        return real_replace(src, dst)

    with patch("strongbox.core.storage.os.replace", side_effect=replace):
        with pytest.raises(PersistenceError, match="database is locked"):
            store.delete(42, "blob1", delete_record)

    assert (store.root / ".blob1.deleting").exists()
    assert "stranded at" in caplog.text


# --- Lock table ---

def test_lock_table_does_not_grow(store):
    for i in range(50):
        store.save(f"b{i}", b"x")
        store.delete(i, f"b{i}", Mock())

    gc.collect()
    assert len(store._locks) == 0


def test_lock_shared_while_held(store):
    lock = store._lock_for("blob1")
    assert store._lock_for("blob1") is lock
    assert len(store._locks) == 1
