"""Small helper to build the StrongBox service graph from a Configuration."""

from __future__ import annotations

from dataclasses import dataclass

from .config import Configuration
from .core.file_service import FileService
from .core.storage import EncryptedFileStore
from .core.stream import FileStreamAdapter
from .core.user_service import UserService
from .database.connection import DatabaseConnection
from .database.models import FileModel, UserModel
from .security.cipher import SymmetricCipher
from .security.credentials import CredentialHardener


@dataclass
class AppContext:
    """Container for the runtime objects a front-end needs."""

    db: DatabaseConnection
    users: UserService
    files: FileService

    def close(self) -> None:
        self.db.close()


def build_context(config: Configuration) -> AppContext:
    """
    Initialize the DB, the blob store and both services.

    One cipher instance is shared by the store and the hardener; nothing is
    kept in module globals.
    """
    cipher = SymmetricCipher(config.aes_key)

    db = DatabaseConnection(config.db_path)
    db.initialize()

    store = EncryptedFileStore(config.files_path, cipher)
    files = FileService(
        FileModel(db),
        store,
        FileStreamAdapter(sanitize_names=config.sanitize_filenames),
    )
    hardener = CredentialHardener(
        cipher,
        time_cost=config.hashing.time_cost,
        memory_cost=config.hashing.memory_cost,
        parallelism=config.hashing.parallelism,
    )
    users = UserService(UserModel(db), hardener, file_service=files)
    return AppContext(db=db, users=users, files=files)
