"""
SecretStore: password-protected key-value storage in a single file.

Provides the public API for the Secret Store:
- ``store(key, value)`` / ``store_overwrite(key, value)``: encrypt and persist a secret
- ``fetch(key, default)`` / ``fetch_required(key)``: decrypt and return a secret
- ``delete(key)``: remove a secret
- ``keys()``: enumerate stored key names
- ``change_password(new_password)``: re-encrypt every secret under a new password

Security Note:
    Never log plaintext or ciphertext values. Only log key names and
    operations. Decrypted values exist in process memory during use.
"""
import os
import logging
from pathlib import Path
from typing import Any, Optional, Union

from .backends import Backend, get_backend
from .cipher_provider import CipherProvider
from .config import StoreConfig
from .crypto import DEFAULT_ITERATIONS, deserialize_value, serialize_value
from .exceptions import KeyNotFoundError
from .key_rotation import rotate_password

logger = logging.getLogger("secret_store")


class SecretStore:
    """Encrypted secret store backed by one file.

    Values are serialized, encrypted with a key derived from the store
    password and handed to the backend as opaque ciphertext. The backend
    never sees plaintext and the store never touches the file directly.

    Args:
        password: Store password.
        file_path: Path of the store file (created on first write).
        backend: Backend name (``"file"`` or ``"readonly"``), a Backend
            subclass, or an already constructed Backend. A constructed
            backend must target file_path and takes no backend options.
        kdf_iterations: PBKDF2 work factor for the default cipher.
        lock_timeout: Seconds to wait for the file lock; None blocks.

    Raises:
        ValueError: If a constructed backend targets another file or
            backend options are passed alongside it.
    """

    def __init__(
        self,
        password: str,
        file_path: Union[str, os.PathLike],
        backend: Union[str, type[Backend], Backend] = "file",
        *,
        kdf_iterations: int = DEFAULT_ITERATIONS,
        lock_timeout: Optional[float] = None,
        **kwargs,
    ):
        self._file_path = Path(file_path)
        self._provider = CipherProvider(password, iterations=kdf_iterations)
        if isinstance(backend, Backend):
            backend_path = getattr(backend, "file_path", None)
            if backend_path is not None and Path(backend_path) != self._file_path:
                raise ValueError(
                    f"Backend targets {backend_path}, not {self._file_path}"
                )
            if lock_timeout is not None:
                kwargs["lock_timeout"] = lock_timeout
            if kwargs:
                raise ValueError(
                    "Backend options cannot be applied to a constructed "
                    f"backend: {sorted(kwargs)}"
                )
            self._backend = backend
        else:
            backend_cls = get_backend(backend) if isinstance(backend, str) else backend
            self._backend = backend_cls(
                self._file_path, lock_timeout=lock_timeout, **kwargs,
            )

    def __repr__(self) -> str:
        mode = "ro" if self.read_only else "rw"
        return f"<SecretStore path={str(self._file_path)!r} mode={mode}>"

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SecretStore":
        """Build a store from a validated StoreConfig."""
        return cls(
            config.password.get_secret_value(),
            config.file_path,
            backend=config.backend,
            kdf_iterations=config.kdf_iterations,
            lock_timeout=config.lock_timeout,
            file_mode=config.file_mode,
        )

    @classmethod
    def from_env(cls) -> "SecretStore":
        """Build a store from SECRET_STORE_* environment variables."""
        return cls.from_config(StoreConfig.from_env())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def read_only(self) -> bool:
        return not self._backend.permits_writes()

    # ------------------------------------------------------------------
    # Cipher helpers
    # ------------------------------------------------------------------

    def _encrypt(self, value: Any) -> bytes:
        return self._provider.encrypt(serialize_value(value))

    def _decrypt(self, ciphertext: bytes) -> Any:
        return deserialize_value(self._provider.decrypt(ciphertext))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def store(self, key: Any, value: Any, force: bool = False) -> Any:
        """Encrypt and persist a new secret.

        Args:
            key: Secret name; normalized with ``str()``.
            value: Secret value (str, bytes or any JSON-compatible value).
            force: Replace an existing secret instead of failing.

        Returns:
            The value that was stored.

        Raises:
            DuplicateKeyError: If key is already stored and force is False.
            ReadOnlyError: If the store is read-only.
        """
        if force:
            return self.store_overwrite(key, value)
        self._backend.insert(key, self._encrypt(value))
        logger.debug("Secret stored: key=%s", key)
        return value

    def store_overwrite(self, key: Any, value: Any) -> Any:
        """Encrypt and persist a secret, replacing any existing value."""
        self._backend.overwrite(key, self._encrypt(value))
        logger.debug("Secret overwritten: key=%s", key)
        return value

    def fetch(self, key: Any, default: Any = None) -> Any:
        """Decrypt and return a secret, or default if it is not stored.

        Raises:
            DecryptionError: If the stored value cannot be decrypted with
                the current password.
        """
        ciphertext = self._backend.get(key)
        if ciphertext is None:
            return default
        return self._decrypt(ciphertext)

    def fetch_required(self, key: Any) -> Any:
        """Decrypt and return a secret.

        Raises:
            KeyNotFoundError: If key is not stored.
            DecryptionError: If the stored value cannot be decrypted.
        """
        ciphertext = self._backend.get(key)
        if ciphertext is None:
            raise KeyNotFoundError(f"Key {key} not found", key=str(key))
        return self._decrypt(ciphertext)

    def delete(self, key: Any) -> bool:
        """Remove a secret. Returns False if it was not stored.

        The value is not decrypted, so secrets written under another
        password can still be removed.
        """
        if self._backend.delete(key) is None:
            return False
        logger.debug("Secret deleted: key=%s", key)
        return True

    def keys(self) -> set[str]:
        return self._backend.keys()

    def reload(self) -> bool:
        return self._backend.reload()

    def change_password(self, new_password: str) -> dict:
        """Re-encrypt every secret under new_password.

        Either every secret becomes readable under the new password, or,
        if any secret fails to decrypt under the current one, nothing is
        written and the current password stays in effect.

        Returns:
            Stats dict with keys: total, rotated.

        Raises:
            ReadOnlyError: If the store is read-only.
            DecryptionError: If a stored secret cannot be decrypted.
        """
        return rotate_password(self._backend, self._provider, new_password)

    def __contains__(self, key: object) -> bool:
        return self._backend.get(key) is not None

    def __len__(self) -> int:
        return len(self._backend.keys())
