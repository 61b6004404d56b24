"""
FileService for StrongBox: file metadata records plus encrypted blobs.
"""

import logging
import uuid
from typing import BinaryIO, List, Optional, Union

from ..database.models import FileModel
from .exceptions import DuplicateFileError, PersistenceError, RecordNotFoundError
from .models import File, StreamDescriptor
from .storage import EncryptedFileStore
from .stream import FileStreamAdapter

logger = logging.getLogger(__name__)


class FileService:
    """High-level file operations over the blob store and the database."""

    def __init__(
        self,
        file_model: FileModel,
        store: EncryptedFileStore,
        adapter: Optional[FileStreamAdapter] = None,
    ):
        self.file_model = file_model
        self.store = store
        self.adapter = adapter if adapter is not None else FileStreamAdapter()

    def get_file(self, name: str, owner: str) -> File:
        """Look up a user's file by display name."""
        file = self.file_model.get_by_name(name, owner)
        if file is None:
            raise RecordNotFoundError(f"File '{name}' not found for user '{owner}'.")
        return file

    def list_files(self, owner: str) -> List[File]:
        return self.file_model.list_by_owner(owner)

    def upload(
        self, owner: str, name: str, source: Union[bytes, BinaryIO]
    ) -> File:
        """
        Store ``source`` encrypted under a fresh blob id and record it.

        The metadata record is created first. If writing the blob fails the
        record is removed again before the error propagates.
        """
        if self.file_model.get_by_name(name, owner) is not None:
            raise DuplicateFileError(f"File '{name}' already exists for user '{owner}'.")

        record = self.file_model.create(File(name=name, owner=owner, blob_id=uuid.uuid4().hex))
        try:
            record.size = self.store.save(record.blob_id, source)
        except Exception:
            try:
                self.file_model.delete(record.id)
            except PersistenceError as e:
                logger.error("Could not roll back record %s after failed upload: %s", record.id, e)
            raise

        record = self.file_model.update(record.id, record)
        logger.info("Uploaded %s for %s (%d bytes)", name, owner, record.size)
        return record

    def download(self, owner: str, name: str) -> StreamDescriptor:
        """Decrypt a user's file and describe it for serving."""
        file = self.get_file(name, owner)
        data = self.store.load(file.blob_id)
        return self.adapter.describe(data, file.name)

    def missing_blobs(self, owner: str) -> List[File]:
        """Records of ``owner`` whose ciphertext is no longer in the store."""
        missing = [f for f in self.list_files(owner) if not self.store.exists(f.blob_id)]
        for file in missing:
            logger.warning("Blob %s of %s is missing for %s", file.blob_id, file.name, owner)
        return missing

    def rename_file(self, owner: str, name: str, new_name: str) -> File:
        file = self.get_file(name, owner)
        file.name = new_name
        return self.file_model.update(file.id, file)

    def delete_file(self, owner: str, name: str) -> None:
        """Remove both the record and the blob of a user's file."""
        file = self.get_file(name, owner)
        self.store.delete(file.id, file.blob_id, self.file_model.delete)
        logger.info("Deleted %s for %s", name, owner)
