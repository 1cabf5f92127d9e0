"""
FileBackend: a key -> ciphertext map persisted in a single file.

The whole mapping is cached in memory and rewritten in full on every
mutation. Another process editing the file between our operations is
detected through the file's modification time: every read compares the
current ``st_mtime_ns`` with the value remembered at the last load or
save and reloads when they differ. Two writes within the same mtime tick
are not told apart.
"""
import os
import logging
from pathlib import Path
from typing import Any, Optional, Union

from ..exceptions import DuplicateKeyError, StorageError
from ..serializer import deserialize, serialize
from .base import Backend
from .lock import file_lock

logger = logging.getLogger("secret_store")

DEFAULT_FILE_MODE = 0o600

# marker value before anything has been observed; None means "file missing"
_UNSET = object()


class FileBackend(Backend):
    """Mutable, change-aware backend over one store file.

    Args:
        file_path: Path of the store file. It does not need to exist.
        lock_timeout: Seconds to wait for the write lock; None blocks.
        file_mode: Permission bits used when the file is created.
    """

    def __init__(
        self,
        file_path: Union[str, os.PathLike],
        lock_timeout: Optional[float] = None,
        file_mode: int = DEFAULT_FILE_MODE,
    ):
        self._file_path = Path(file_path)
        self._lock_timeout = lock_timeout
        self._file_mode = file_mode
        self._data: Optional[dict[str, bytes]] = None
        self._mtime: Any = _UNSET
        self._load()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} path={str(self._file_path)!r}>"

    @property
    def file_path(self) -> Path:
        return self._file_path

    # ------------------------------------------------------------------
    # Load path
    # ------------------------------------------------------------------

    def _current_mtime(self) -> Optional[int]:
        try:
            return os.stat(self._file_path).st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StorageError(
                f"Unable to stat store file {self._file_path}: {err}"
            ) from err

    def _read(self) -> dict[str, bytes]:
        try:
            raw = self._file_path.read_bytes()
        except FileNotFoundError:
            raw = None
        except OSError as err:
            raise StorageError(
                f"Unable to read store file {self._file_path}: {err}"
            ) from err
        return deserialize(raw)

    def _load(self) -> dict[str, bytes]:
        # stat before reading: a write racing the read leaves an older
        # marker behind, which forces another reload on the next access.
        mtime = self._current_mtime()
        self._data = self._read()
        self._mtime = mtime
        logger.debug(
            "Loaded store file %s: %d key(s)", self._file_path, len(self._data),
        )
        return self._data

    def _invalidate(self) -> None:
        self._data = None
        self._mtime = _UNSET

    def _refresh(self) -> dict[str, bytes]:
        """Return the cached mapping, reloading it if the file changed."""
        if self._data is None:
            return self._load()
        current = self._current_mtime()
        if self._mtime is _UNSET:
            self._mtime = current
        elif self._mtime != current:
            logger.debug(
                "Store file %s modified externally, reloading", self._file_path,
            )
            return self._load()
        return self._data

    # ------------------------------------------------------------------
    # Save path
    # ------------------------------------------------------------------

    def _save(self) -> None:
        """Rewrite the whole file under an exclusive lock.

        On failure the cache is dropped, so the next read goes back to disk.
        """
        try:
            payload = serialize(self._data or {})
        except (TypeError, ValueError) as err:
            self._invalidate()
            raise StorageError(
                f"Unable to encode store file {self._file_path}: {err}"
            ) from err
        try:
            fd = os.open(self._file_path, os.O_RDWR | os.O_CREAT, self._file_mode)
        except OSError as err:
            self._invalidate()
            raise StorageError(
                f"Unable to open store file {self._file_path}: {err}"
            ) from err
        try:
            with os.fdopen(fd, "r+b") as fh:
                with file_lock(fh.fileno(), self._lock_timeout):
                    fh.truncate(0)
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                    self._mtime = os.fstat(fh.fileno()).st_mtime_ns
        except StorageError:
            self._invalidate()
            raise
        except OSError as err:
            self._invalidate()
            raise StorageError(
                f"Unable to write store file {self._file_path}: {err}"
            ) from err
        logger.debug(
            "Saved store file %s: %d key(s)", self._file_path, len(self._data or {}),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: Any) -> Optional[bytes]:
        return self._refresh().get(str(key))

    def keys(self) -> set[str]:
        return set(self._refresh())

    def insert(self, key: Any, ciphertext: bytes) -> bytes:
        """Store ciphertext under a new key and persist the file.

        Raises:
            DuplicateKeyError: If key is already stored.
            StorageError: If the file could not be written.
        """
        key = str(key)
        if self.get(key) is not None:
            raise DuplicateKeyError(f"Key {key} already stored", key=key)
        self._data[key] = ciphertext
        self._save()
        logger.debug("Store insert: key=%s", key)
        return ciphertext

    def overwrite(self, key: Any, ciphertext: bytes) -> bytes:
        """Store ciphertext under key whether or not it already exists."""
        key = str(key)
        self._refresh().pop(key, None)
        return self.insert(key, ciphertext)

    def delete(self, key: Any) -> Optional[bytes]:
        """Remove key and persist; a missing key is a no-op returning None."""
        key = str(key)
        previous = self.get(key)
        if previous is None:
            return None
        del self._data[key]
        self._save()
        logger.debug("Store delete: key=%s", key)
        return previous

    def reload(self) -> bool:
        self._invalidate()
        self._load()
        return True

    def permits_writes(self) -> bool:
        return True
