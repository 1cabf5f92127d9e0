"""
Advisory exclusive lock on an open store file.

Uses ``fcntl.flock``: cooperating processes taking the same lock are
serialized, processes that ignore it are not.
"""
import time
import fcntl
import logging
from contextlib import contextmanager
from collections.abc import Iterator
from typing import Optional

from ..exceptions import LockTimeoutError

logger = logging.getLogger("secret_store")

_POLL_INTERVAL = 0.05  # seconds


def _acquire(fd: int, timeout: Optional[float]) -> None:
    if timeout is None:
        fcntl.flock(fd, fcntl.LOCK_EX)
        return
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            # Lock held by another process
            if time.monotonic() >= deadline:
                raise LockTimeoutError(
                    f"Failed to acquire store file lock after {timeout}s"
                ) from None
            time.sleep(_POLL_INTERVAL)


@contextmanager
def file_lock(fd: int, timeout: Optional[float] = None) -> Iterator[int]:
    """Hold an exclusive lock on ``fd`` for the duration of the block.

    Args:
        fd: Open file descriptor of the store file.
        timeout: Seconds to wait for the lock; None blocks indefinitely.

    Raises:
        LockTimeoutError: If ``timeout`` elapsed before the lock was acquired.
    """
    _acquire(fd, timeout)
    try:
        yield fd
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
