"""
Cipher Provider: lazily builds the cipher handle for the current password.
"""
import logging
from typing import Callable, Optional

from .crypto import AESCipher, Cipher, DEFAULT_ITERATIONS

logger = logging.getLogger("secret_store")


class CipherProvider:
    """Holds the store password and a cached cipher built from it.

    The handle is ``None`` until first use and after every password change;
    ``cipher()`` populates it once and reuses it afterwards.
    """

    def __init__(
        self,
        password: str,
        iterations: int = DEFAULT_ITERATIONS,
        factory: Optional[Callable[[str], Cipher]] = None,
    ):
        self._password = password
        self._iterations = iterations
        self._factory = factory
        self._cipher: Optional[Cipher] = None

    def __repr__(self) -> str:
        state = "ready" if self._cipher is not None else "empty"
        return f"<CipherProvider cipher={state}>"

    def _build(self) -> Cipher:
        if self._factory is not None:
            return self._factory(self._password)
        return AESCipher(self._password, iterations=self._iterations)

    def cipher(self) -> Cipher:
        """Return the cipher for the current password, building it on first use."""
        if self._cipher is None:
            logger.debug("Building cipher handle")
            self._cipher = self._build()
        return self._cipher

    def set_password(self, new_password: str) -> None:
        """Replace the password and drop the cached cipher.

        Stored data is not touched; see ``rotate_password`` for re-encryption.
        """
        self._password = new_password
        self._cipher = None

    def encrypt(self, plaintext: bytes) -> bytes:
        return self.cipher().encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self.cipher().decrypt(ciphertext)
