"""
UserService for StrongBox: registration and user record management.
"""

import logging
from typing import List, Optional

from ..database.models import UserModel
from ..security.credentials import CredentialHardener
from .exceptions import RecordNotFoundError
from .file_service import FileService
from .models import Credentials, User

logger = logging.getLogger(__name__)


class UserService:
    """Registration, lookup and credential checks for users."""

    def __init__(
        self,
        user_model: UserModel,
        hardener: CredentialHardener,
        file_service: Optional[FileService] = None,
    ):
        self.user_model = user_model
        self.hardener = hardener
        self.file_service = file_service

    def register(self, credentials: Credentials) -> User:
        """
        Validate, harden and persist ``credentials``.

        Invalid credentials raise before anything is hashed or written.
        """
        hardened = self.hardener.harden(credentials)
        user = self.user_model.create(User(hardened))
        logger.info("Registered user %s", user.username)
        return user

    def authenticate(self, credentials: Credentials) -> Optional[User]:
        """Return the user if the client digest matches, else None."""
        user = self.user_model.get(credentials.username)
        if user is None:
            return None
        if not self.hardener.verify(credentials, user.credentials.password):
            logger.info("Rejected credentials for %s", credentials.username)
            return None
        return user

    def get_user(self, username: str) -> User:
        user = self.user_model.get(username)
        if user is None:
            raise RecordNotFoundError(f"User '{username}' not found.")
        return user

    def list_users(self) -> List[User]:
        return self.user_model.list_all()

    def update_user(self, username: str, credentials: Credentials) -> User:
        """Replace a user's username and/or password with freshly hardened ones."""
        self.get_user(username)
        hardened = self.hardener.harden(credentials)
        return self.user_model.update(username, User(hardened))

    def delete_user(self, username: str) -> None:
        """Delete a user; their files go first so no blob is left behind."""
        self.get_user(username)
        if self.file_service is not None:
            for file in self.file_service.list_files(username):
                self.file_service.delete_file(username, file.name)
        self.user_model.delete(username)
        logger.info("Deleted user %s", username)
