"""Storage backends for Secret Store."""
from .base import Backend
from .file import FileBackend
from .readonly import ReadOnlyFileBackend

BACKENDS: dict[str, type[Backend]] = {
    "file": FileBackend,
    "readonly": ReadOnlyFileBackend,
}


def get_backend(name: str) -> type[Backend]:
    """Return the backend class registered under name.

    Raises:
        ValueError: If no backend is registered with that name.
    """
    try:
        return BACKENDS[name]
    except KeyError:
        raise ValueError(
            f"Unsupported backend: {name} (available: {sorted(BACKENDS)})"
        ) from None


__all__ = [
    "Backend",
    "FileBackend",
    "ReadOnlyFileBackend",
    "BACKENDS",
    "get_backend",
]
