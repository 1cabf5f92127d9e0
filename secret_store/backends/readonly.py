"""
ReadOnlyFileBackend: a fixed snapshot of a store file.

The file is read once, at construction. Later changes on disk are never
picked up, not even by ``reload()``; open a new backend to see them.
"""
import logging
from typing import Any, NoReturn

from ..exceptions import ReadOnlyError
from .file import FileBackend

logger = logging.getLogger("secret_store")


class ReadOnlyFileBackend(FileBackend):
    """Immutable view over a store file. Every mutation raises ReadOnlyError."""

    def _refresh(self) -> dict[str, bytes]:
        return self._data

    def _reject(self, operation: str, key: Any) -> NoReturn:
        raise ReadOnlyError(
            f"Cannot {operation} key {key}: store {self._file_path} is read-only",
            key=str(key),
        )

    def insert(self, key: Any, ciphertext: bytes) -> bytes:
        self._reject("insert", key)

    def overwrite(self, key: Any, ciphertext: bytes) -> bytes:
        self._reject("overwrite", key)

    def delete(self, key: Any) -> bytes:
        self._reject("delete", key)

    def reload(self) -> bool:
        logger.debug(
            "Ignoring reload of read-only snapshot %s", self._file_path,
        )
        return True

    def permits_writes(self) -> bool:
        return False
