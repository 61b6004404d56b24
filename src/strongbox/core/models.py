"""
Base data models for users, stored files and served streams
"""

from datetime import datetime
from typing import Optional


def _parse_timestamp(value):
    # SQLite hands timestamps back as text
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Credentials:
    """
        Username plus base64url-encoded password as sent by a client
    """

    __slots__ = ('username', 'password')

    def __init__(self, username, password):
        self.username = username
        self.password = password

    def to_dict(self):
        return {'username': self.username, 'password': self.password}

    def __repr__(self):
        # never print the password
        return f"Credentials(username={self.username!r})"

    def __eq__(self, other):
        if not isinstance(other, Credentials):
            return NotImplemented
        return self.username == other.username and self.password == other.password


class User:
    """
        Registered user; credentials.password holds the encrypted stretched hash
    """

    __slots__ = ('credentials', 'created_at', 'updated_at')

    def __init__(self, credentials, created_at=None, updated_at=None):
        """
            Initialize User
        """
        self.credentials = credentials
        self.created_at = created_at if created_at is not None else datetime.utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    @property
    def username(self):
        return self.credentials.username

    def to_dict(self):
        """
            Convert to dictionary, without the password
        """
        return {
            'username': self.username,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    def __repr__(self):
        return f"User(username={self.username!r})"

    def __eq__(self, other):
        if not isinstance(other, User):
            return NotImplemented
        return self.credentials == other.credentials


def create_user_from_row(row):
    """
        Create a User from a database row
    """
    return User(
        credentials=Credentials(row['username'], row['password']),
        created_at=_parse_timestamp(row.get('created_at')),
        updated_at=_parse_timestamp(row.get('updated_at')),
    )


class File:
    """
        Metadata of a stored file. The ciphertext lives at <files_path>/<blob_id>
    """

    __slots__ = ('id', 'blob_id', 'name', 'owner', 'size', 'created_at', 'updated_at')

    def __init__(self, name, owner, blob_id, size=0, id=None, created_at=None, updated_at=None):
        """
            Initialize File; id stays None until the record is persisted
        """
        self.id = id
        self.blob_id = blob_id
        self.name = name
        self.owner = owner
        self.size = size
        self.created_at = created_at if created_at is not None else datetime.utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    def to_dict(self):
        """
            Convert metadata to dict
        """
        return {
            'id': self.id,
            'blob_id': self.blob_id,
            'name': self.name,
            'owner': self.owner,
            'size': self.size,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    def __repr__(self):
        return f"File(id={self.id!r}, name={self.name!r}, owner={self.owner!r})"

    def __eq__(self, other):
        if not isinstance(other, File):
            return NotImplemented
        return self.id == other.id and self.blob_id == other.blob_id

    def __hash__(self):
        return hash((self.id, self.blob_id))


def create_file_from_row(row):
    """
        Create a File from a database row
    """
    return File(
        id=row['id'],
        blob_id=row['blob_id'],
        name=row['name'],
        owner=row['owner'],
        size=row.get('size', 0),
        created_at=_parse_timestamp(row.get('created_at')),
        updated_at=_parse_timestamp(row.get('updated_at')),
    )


class StreamDescriptor:
    """
        What the HTTP layer needs to serve decrypted bytes
    """

    __slots__ = ('length', 'content_type', 'stream', 'headers')

    def __init__(self, length, content_type, stream, headers: Optional[dict] = None):
        self.length = length
        self.content_type = content_type
        self.stream = stream
        self.headers = headers if headers is not None else {}

    def __repr__(self):
        return f"StreamDescriptor(length={self.length!r}, content_type={self.content_type!r})"
