"""Secret Store: a password-protected secret store kept in a single file.

Security Note (Threat Model):
    Secrets are encrypted at rest with a key derived from the store password.
    Decrypted values and the password live in process memory while in use;
    a memory dump of the application process can expose them.
    File locking is advisory: processes that do not take the lock can
    still corrupt the store. Both are accepted limitations.
"""

from .version import __version__
from .store import SecretStore
from .key_rotation import rotate_password
from .cipher_provider import CipherProvider
from .config import StoreConfig
from .crypto import AESCipher, Cipher, generate_password
from .backends import Backend, FileBackend, ReadOnlyFileBackend
from .exceptions import (
    SecretStoreError,
    DuplicateKeyError,
    KeyNotFoundError,
    DecryptionError,
    ReadOnlyError,
    StorageError,
    LockTimeoutError,
)

__all__ = [
    "__version__",
    "SecretStore",
    "rotate_password",
    "CipherProvider",
    "StoreConfig",
    "AESCipher",
    "Cipher",
    "generate_password",
    "Backend",
    "FileBackend",
    "ReadOnlyFileBackend",
    "SecretStoreError",
    "DuplicateKeyError",
    "KeyNotFoundError",
    "DecryptionError",
    "ReadOnlyError",
    "StorageError",
    "LockTimeoutError",
]
