"""
Secret Store Base Backend Interface.

A backend maps key names to ciphertext. It never sees plaintext.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional


class Backend(ABC):
    """
    Abstract base class for storage backends.

    Keys of any type are normalized with ``str()`` before lookup,
    insertion or deletion.
    """

    @abstractmethod
    def get(self, key: Any) -> Optional[bytes]:
        """Return the ciphertext stored under key, or None."""
        pass

    @abstractmethod
    def keys(self) -> set[str]:
        """Return the set of stored key names."""
        pass

    @abstractmethod
    def insert(self, key: Any, ciphertext: bytes) -> bytes:
        """Store a new key; fail if it already exists."""
        pass

    @abstractmethod
    def overwrite(self, key: Any, ciphertext: bytes) -> bytes:
        """Store key, replacing any existing value."""
        pass

    @abstractmethod
    def delete(self, key: Any) -> Optional[bytes]:
        """Remove key and return its prior ciphertext, or None."""
        pass

    @abstractmethod
    def reload(self) -> bool:
        """Drop any cached state and re-read the underlying storage."""
        pass

    @abstractmethod
    def permits_writes(self) -> bool:
        """Whether mutating operations are allowed."""
        pass
