"""
Secret Store Crypto Core: password key derivation, AEAD cipher and value codec.

Every secret is encrypted with AES-256-GCM under a key derived from the
store password with PBKDF2-HMAC-SHA256. The salt travels inside each token,
so the store file needs no header:

    token = urlsafe_b64( [salt 16B][nonce 12B][encrypted_payload + GCM_tag 16B] )

Security Note:
    Never log plaintext, tokens or derived keys.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
import secrets
import logging
import binascii
from typing import Any, Protocol, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecryptionError

logger = logging.getLogger("secret_store")

SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
DEFAULT_ITERATIONS = 600_000

_BYTES_WRAPPER_KEY = "__secret_bytes_b64__"


class Cipher(Protocol):
    """Anything able to turn plaintext bytes into ciphertext and back."""

    def encrypt(self, plaintext: bytes) -> bytes:
        ...

    def decrypt(self, ciphertext: bytes) -> bytes:
        ...


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: Union[str, bytes], salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
    """Derive a 32-byte encryption key from a password using PBKDF2-HMAC-SHA256.

    Args:
        password: Store password.
        salt: Random salt stored alongside the ciphertext.
        iterations: PBKDF2 work factor.

    Returns:
        32-byte derived key.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


# ---------------------------------------------------------------------------
# Password cipher
# ---------------------------------------------------------------------------

class AESCipher:
    """AES-GCM cipher bound to a single password.

    The handle picks one random salt when it is built and derives its
    encryption key once, so encrypting many secrets costs a single PBKDF2
    run. Keys for salts found in foreign tokens are derived on demand and
    memoized for the lifetime of the handle.
    """

    def __init__(self, password: Union[str, bytes], iterations: int = DEFAULT_ITERATIONS):
        if isinstance(password, str):
            password = password.encode("utf-8")
        self._password = password
        self._iterations = iterations
        self._salt = os.urandom(SALT_SIZE)
        self._keys: dict[bytes, bytes] = {}

    def __repr__(self) -> str:
        return f"<AESCipher iterations={self._iterations}>"

    def _key_for(self, salt: bytes) -> bytes:
        key = self._keys.get(salt)
        if key is None:
            key = derive_key(self._password, salt, self._iterations)
            self._keys[salt] = key
        return key

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext into an ASCII token.

        Args:
            plaintext: Data to encrypt.

        Returns:
            url-safe base64 token bytes.
        """
        key = self._key_for(self._salt)
        nonce = os.urandom(NONCE_SIZE)
        ct = AESGCM(key).encrypt(nonce, plaintext, None)
        return base64.urlsafe_b64encode(self._salt + nonce + ct)

    def decrypt(self, ciphertext: Union[str, bytes]) -> bytes:
        """Decrypt a token produced by :meth:`encrypt`.

        Args:
            ciphertext: url-safe base64 token.

        Returns:
            Decrypted plaintext bytes.

        Raises:
            DecryptionError: If the token is malformed, was tampered with,
                or was encrypted under a different password.
        """
        if isinstance(ciphertext, str):
            ciphertext = ciphertext.encode("ascii", errors="replace")
        try:
            raw = base64.b64decode(ciphertext, altchars=b"-_", validate=True)
        except (binascii.Error, ValueError) as err:
            raise DecryptionError("Ciphertext is not a valid token") from err
        _min = SALT_SIZE + NONCE_SIZE + TAG_SIZE
        if len(raw) < _min:
            raise DecryptionError(
                f"Ciphertext too short: {len(raw)} bytes (minimum {_min})"
            )
        salt = raw[:SALT_SIZE]
        nonce = raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
        ct = raw[SALT_SIZE + NONCE_SIZE:]
        try:
            return AESGCM(self._key_for(salt)).decrypt(nonce, ct, None)
        except InvalidTag as err:
            raise DecryptionError(
                "Unable to decrypt secret: wrong password or corrupted data"
            ) from err


def generate_password(nbytes: int = 32) -> str:
    """Generate a random url-safe password.

    This is a utility for operators creating a new store.

    Returns:
        Random password string.
    """
    return secrets.token_urlsafe(nbytes)


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to bytes for encryption.

    Supports: str, int, float, dict, list, bytes, bool, None.
    bytes values are wrapped as {"__secret_bytes_b64__": "<base64>"} for safe JSON round-trip.

    Args:
        value: Python value to serialize.

    Returns:
        orjson-encoded bytes.
    """
    if isinstance(value, bytes):
        wrapped = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
        return orjson.dumps(wrapped)
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes back to a Python value.

    Args:
        data: orjson-encoded bytes from serialize_value.

    Returns:
        Original Python value.
    """
    parsed = orjson.loads(data)
    if isinstance(parsed, dict) and _BYTES_WRAPPER_KEY in parsed and len(parsed) == 1:
        return base64.b64decode(parsed[_BYTES_WRAPPER_KEY])
    return parsed
