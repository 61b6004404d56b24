"""
Exceptions for StrongBox
Every error raised by the package derives from StrongBoxError so callers
have one general catcher
"""


class StrongBoxError(Exception):
    # general container for errors
    pass


class ValidationError(StrongBoxError):
    # raised when credentials have the wrong shape
    pass


class InvalidUsernameError(ValidationError):
    # raised when the username does not match the nickname pattern
    pass


class InvalidPasswordError(ValidationError):
    # raised when the password is not a hex SHA-512 digest
    pass


class DecodingError(StrongBoxError):
    # raised on malformed base64 or a ciphertext too short to hold a nonce
    pass


class HashingError(StrongBoxError):
    # raised when password stretching fails
    pass


class StorageError(StrongBoxError):
    # raised if blob storage fails in some way (permissions, disk full, bad id)
    pass


class NotFoundError(StorageError):
    # raised if a blob is not found in storage
    pass


class PersistenceError(StrongBoxError):
    # raised when the metadata database fails
    pass


class ConstraintViolationError(PersistenceError):
    # raised when a write breaks a UNIQUE or FOREIGN KEY constraint
    pass


class UserExistsError(ConstraintViolationError):
    # raised when creating an existing user
    pass


class DuplicateFileError(ConstraintViolationError):
    # raised when a user already owns a file with that name
    pass


class RecordNotFoundError(PersistenceError):
    # raised when a user or file record DNE in the DB
    pass


class InitializationError(StrongBoxError):
    # raised when initialization fails (anywhere)
    pass


class InvalidKeyError(InitializationError):
    # raised when the symmetric key has the wrong size
    pass


class ConfigurationError(InitializationError):
    # raised when configuration is missing or malformed
    pass
