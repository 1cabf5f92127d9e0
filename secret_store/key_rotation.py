"""
Password Rotation: re-encrypt every secret in a store under a new password.

The rotation reads everything before it writes anything. All secrets are
decrypted under the current password first; if any of them fails, the
rotation aborts and the store is left untouched. Only then is the
password switched and each secret re-encrypted and overwritten.

A process crash in the middle of the write phase can leave some secrets
under the old password and some under the new one.

Security Note:
    Plaintext exists in memory only for the duration of the rotation.
    Never log plaintext or ciphertext values.
"""
import logging

from .backends.base import Backend
from .cipher_provider import CipherProvider
from .exceptions import ReadOnlyError

logger = logging.getLogger("secret_store")


def rotate_password(
    backend: Backend,
    provider: CipherProvider,
    new_password: str,
) -> dict:
    """Re-encrypt all secrets in backend under new_password.

    Args:
        backend: Storage backend holding the ciphertexts.
        provider: Cipher provider holding the current password. It is
            switched to new_password once every secret has been decrypted.
        new_password: Password to rotate to.

    Returns:
        Stats dict with keys: total, rotated.

    Raises:
        ReadOnlyError: If the backend does not permit writes.
        DecryptionError: If any secret cannot be decrypted under the current
            password. Nothing has been written when this is raised.
    """
    if not backend.permits_writes():
        raise ReadOnlyError("Cannot change the password of a read-only store")

    keys = sorted(backend.keys())
    stats = {"total": len(keys), "rotated": 0}

    logger.info("Starting password rotation (%d secret(s))", len(keys))

    decrypted: dict[str, bytes] = {}
    for key in keys:
        ciphertext = backend.get(key)
        if ciphertext is None:
            # removed by another writer since keys() was listed
            continue
        decrypted[key] = provider.decrypt(ciphertext)

    provider.set_password(new_password)

    for key, plaintext in decrypted.items():
        backend.overwrite(key, provider.encrypt(plaintext))
        stats["rotated"] += 1

    logger.info("Password rotation complete: %s", stats)
    return stats
