"""
Encrypted blob storage for StrongBox

Structure Map for reference:
==============================
 - <files_path>/                  (mode 0700)
      - {blob_id}                 (mode 0600, nonce || ciphertext)
      - .{blob_id}.*.tmp          (in-flight write, renamed over {blob_id})
      - .{blob_id}.deleting       (blob moved aside while its record is deleted)
==============================
For reference:
> Blobs are opaque: no header or magic beyond the cipher nonce
> Plaintext exists only in memory, never on disk
> Whole files are buffered in memory to encrypt/decrypt them
> Metadata records live in the database; this module only sees blob ids
"""

import logging
import os
import tempfile
import threading
import weakref
from pathlib import Path
from typing import Any, BinaryIO, Callable, Union

from ..security.cipher import SymmetricCipher
from .exceptions import InitializationError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

DIR_PERMS = 0o700
FILE_PERMS = 0o600


class EncryptedFileStore:
    """Blobs keyed by identifier, encrypted with one symmetric cipher"""

    def __init__(self, files_path: Union[str, Path], cipher: SymmetricCipher):
        self.root = Path(files_path).expanduser()
        self.cipher = cipher
        # entries vanish once no thread holds the lock
        self._locks = weakref.WeakValueDictionary()
        self._locks_lock = threading.Lock()
        self.bootstrap()

    def bootstrap(self) -> None:
        """Create the files directory if needed; failure is unrecoverable."""
        missing = [p for p in reversed((self.root, *self.root.parents)) if not p.exists()]
        try:
            # mkdir(parents=True) would give the ancestors default permissions
            for path in missing:
                path.mkdir(mode=DIR_PERMS, exist_ok=True)
        except OSError as e:
            logger.error("Error creating files directory %s: %s", self.root, e)
            raise InitializationError(
                f"Cannot create files directory {self.root}: {e}"
            ) from e
        if not self.root.is_dir():
            raise InitializationError(f"Files path {self.root} is not a directory")

    def _lock_for(self, blob_id: str) -> threading.Lock:
        with self._locks_lock:
            lock = self._locks.get(blob_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[blob_id] = lock
            return lock

    def blob_path(self, blob_id: str) -> Path:
        if (
            not isinstance(blob_id, str)
            or not blob_id
            or blob_id.startswith(".")
            or "\x00" in blob_id
            or os.sep in blob_id
            or (os.altsep and os.altsep in blob_id)
        ):
            raise StorageError(f"Invalid blob identifier: {blob_id!r}")
        return self.root / blob_id

    def _trash_path(self, blob_id: str) -> Path:
        return self.root / f".{blob_id}.deleting"

    def exists(self, blob_id: str) -> bool:
        return self.blob_path(blob_id).is_file()

    def save(self, blob_id: str, source: Union[bytes, bytearray, BinaryIO]) -> int:
        """
        Encrypt ``source`` and store it as ``blob_id``; returns the plaintext size.

        The whole input is read into memory first. The ciphertext is written
        to a temporary file next to the target and renamed over it, so a
        reader never sees a half-written blob. Existing blobs are replaced.
        """
        path = self.blob_path(blob_id)
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
        else:
            try:
                data = source.read()
            except OSError as e:
                raise StorageError(f"Cannot read upload for {blob_id}: {e}") from e
        blob = self.cipher.encrypt(data)

        with self._lock_for(blob_id):
            # mkstemp creates the file with mode 0600
            fd, tmp_name = tempfile.mkstemp(
                dir=self.root, prefix=f".{blob_id}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(blob)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_name, FILE_PERMS)
                os.replace(tmp_name, path)
            except OSError as e:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary blob %s", tmp_name)
                raise StorageError(f"Cannot write blob {blob_id}: {e}") from e

        logger.debug("Stored blob %s (%d bytes)", blob_id, len(data))
        return len(data)

    def load(self, blob_id: str) -> bytes:
        """Read and decrypt ``blob_id``; raises NotFoundError if it is missing."""
        path = self.blob_path(blob_id)
        try:
            with open(path, "rb") as f:
                blob = f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f"Blob {blob_id} not found") from e
        except OSError as e:
            raise StorageError(f"Cannot read blob {blob_id}: {e}") from e
        return self.cipher.decrypt(blob)

    def delete(
        self,
        metadata_id: Any,
        blob_id: str,
        delete_record: Callable[[Any], Any],
    ) -> None:
        """
        Delete a file's metadata record and its blob as one logical step.

        The blob is moved aside first, then ``delete_record(metadata_id)``
        runs. If the record delete fails the blob is put back and the error
        propagates untouched. If the blob was already gone the record is
        still removed and NotFoundError is raised. A blob that cannot be
        unlinked after its record is gone is reported as an orphan.
        """
        path = self.blob_path(blob_id)
        trash = self._trash_path(blob_id)

        with self._lock_for(blob_id):
            try:
                os.replace(path, trash)
            except FileNotFoundError:
                delete_record(metadata_id)
                logger.warning(
                    "Record %s deleted but blob %s was already missing",
                    metadata_id,
                    blob_id,
                )
                raise NotFoundError(f"Blob {blob_id} not found")
            except OSError as e:
                raise StorageError(f"Cannot delete blob {blob_id}: {e}") from e

            try:
                delete_record(metadata_id)
            except Exception:
                try:
                    os.replace(trash, path)
                except OSError as e:
                    logger.error(
                        "Could not restore blob %s after failed record delete; stranded at %s: %s",
                        blob_id,
                        trash,
                        e,
                    )
                raise

            try:
                trash.unlink()
            except OSError as e:
                logger.error(
                    "Record %s deleted but blob could not be removed; orphan left at %s",
                    metadata_id,
                    trash,
                )
                raise StorageError(
                    f"Orphaned blob {blob_id} at {trash}: {e}"
                ) from e

        logger.debug("Deleted record %s and blob %s", metadata_id, blob_id)
