"""ORM-style helpers for database operations."""

from .connection import DatabaseConnection
from ..core.models import File, User, create_file_from_row, create_user_from_row
from ..core.exceptions import (
    ConstraintViolationError,
    DuplicateFileError,
    RecordNotFoundError,
    UserExistsError,
)


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        """Initialize with a DatabaseConnection."""
        self.db = db


class UserModel(BaseModel):
    """DB model for users, keyed by username."""

    def create(self, user: User) -> User:
        """Insert a user and return the stored row."""
        query = "INSERT INTO users (username, password) VALUES (?, ?)"
        try:
            self.db.execute(query, (user.username, user.credentials.password))
        except ConstraintViolationError as e:
            raise UserExistsError(f"Username '{user.username}' is already taken.") from e
        return self.get(user.username)

    def get(self, username):
        """Get user by username, or None."""
        row = self.db.fetch_one("SELECT * FROM users WHERE username = ?", (username,))
        return create_user_from_row(row) if row else None

    def list_all(self):
        """List all users."""
        rows = self.db.fetch_all("SELECT * FROM users ORDER BY username")
        return [create_user_from_row(row) for row in rows]

    def update(self, username, user: User) -> User:
        """Replace username and password of an existing user."""
        query = """
            UPDATE users SET
                username = ?,
                password = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE username = ?
        """
        try:
            count = self.db.execute(
                query, (user.username, user.credentials.password, username)
            )
        except ConstraintViolationError as e:
            raise UserExistsError(f"Username '{user.username}' is already taken.") from e
        if count == 0:
            raise RecordNotFoundError(f"User '{username}' not found.")
        return self.get(user.username)

    def delete(self, username):
        """Delete user by username (cascades to file records)."""
        count = self.db.execute("DELETE FROM users WHERE username = ?", (username,))
        if count == 0:
            raise RecordNotFoundError(f"User '{username}' not found.")
        return True


class FileModel(BaseModel):
    """DB model for file metadata."""

    def create(self, file: File) -> File:
        """Insert a file record and return it with its assigned id."""
        query = """
            INSERT INTO files (blob_id, name, owner, size)
            VALUES (?, ?, ?, ?)
        """
        try:
            self.db.execute(query, (file.blob_id, file.name, file.owner, file.size))
        except ConstraintViolationError:
            if self.get_by_name(file.name, file.owner) is not None:
                raise DuplicateFileError(
                    f"File '{file.name}' already exists for user '{file.owner}'."
                )
            raise
        return self.get_by_blob_id(file.blob_id)

    def get(self, file_id):
        """Get file by numeric id, or None."""
        row = self.db.fetch_one("SELECT * FROM files WHERE id = ?", (file_id,))
        return create_file_from_row(row) if row else None

    def get_by_blob_id(self, blob_id):
        row = self.db.fetch_one("SELECT * FROM files WHERE blob_id = ?", (blob_id,))
        return create_file_from_row(row) if row else None

    def get_by_name(self, name, owner):
        """Get a user's file by display name, or None."""
        row = self.db.fetch_one(
            "SELECT * FROM files WHERE name = ? AND owner = ?", (name, owner)
        )
        return create_file_from_row(row) if row else None

    def list_by_owner(self, owner):
        """List a user's files, newest first."""
        rows = self.db.fetch_all(
            "SELECT * FROM files WHERE owner = ? ORDER BY created_at DESC, id DESC",
            (owner,),
        )
        return [create_file_from_row(row) for row in rows]

    def update(self, file_id, file: File) -> File:
        """Update name and size of a file record."""
        query = """
            UPDATE files SET
                name = ?,
                size = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """
        try:
            count = self.db.execute(query, (file.name, file.size, file_id))
        except ConstraintViolationError as e:
            raise DuplicateFileError(
                f"File '{file.name}' already exists for user '{file.owner}'."
            ) from e
        if count == 0:
            raise RecordNotFoundError(f"File with ID '{file_id}' not found.")
        return self.get(file_id)

    def delete(self, file_id):
        """Delete a file record by id."""
        count = self.db.execute("DELETE FROM files WHERE id = ?", (file_id,))
        if count == 0:
            raise RecordNotFoundError(f"File with ID '{file_id}' not found.")
        return True
