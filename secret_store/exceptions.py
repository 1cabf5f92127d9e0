"""
Secret Store Exceptions.

Every error raised by the package derives from :class:`SecretStoreError`.
Low-level failures (``OSError``, ``InvalidTag``, JSON decode errors) are
re-raised as one of these, chained to the original exception.
"""
from typing import Any, Optional


class SecretStoreError(Exception):
    """Base class for all Secret Store errors."""

    def __init__(self, message: str, key: Optional[Any] = None):
        super().__init__(message)
        self.key = key


class DuplicateKeyError(SecretStoreError):
    """A key is already stored and the caller did not ask to overwrite it."""


class KeyNotFoundError(SecretStoreError, KeyError):
    """A required key is not present in the store."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead.
        return str(self.args[0]) if self.args else ''


class DecryptionError(SecretStoreError):
    """Ciphertext could not be decrypted (wrong password or corrupt data)."""


class ReadOnlyError(SecretStoreError):
    """A mutation was attempted against a read-only backend."""


class StorageError(SecretStoreError):
    """The store file could not be read, written or decoded."""


class LockTimeoutError(StorageError):
    """The exclusive lock on the store file was not acquired in time."""
