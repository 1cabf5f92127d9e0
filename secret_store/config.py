"""
Secret Store Configuration: validated settings and environment loading.

Reads settings from environment variables:
    SECRET_STORE_PASSWORD = <store password>            (required)
    SECRET_STORE_PATH = <path of the store file>        (required)
    SECRET_STORE_BACKEND = file | readonly              (default: file)
    SECRET_STORE_KDF_ITERATIONS = <int>                 (default: 600000)
    SECRET_STORE_LOCK_TIMEOUT = <seconds>               (default: wait forever)

Security Note:
    Never log the password. Only log the file path and backend name.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from .backends import BACKENDS
from .backends.file import DEFAULT_FILE_MODE
from .crypto import DEFAULT_ITERATIONS

logger = logging.getLogger("secret_store")


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set")
    return value


class StoreConfig(BaseModel):
    """Validated secret store configuration."""

    password: SecretStr
    file_path: Path
    backend: str = Field(default="file")
    kdf_iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    lock_timeout: Optional[float] = Field(default=None, gt=0)
    file_mode: int = Field(default=DEFAULT_FILE_MODE, ge=0, le=0o777)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        """Reject empty passwords."""
        if not v.get_secret_value():
            raise ValueError("Store password cannot be empty")
        return v

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate backend is registered."""
        if v not in BACKENDS:
            raise ValueError(
                f"Unsupported backend: {v} (available: {sorted(BACKENDS)})"
            )
        return v

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create StoreConfig by loading values from environment.

        Returns:
            Populated StoreConfig instance.

        Raises:
            RuntimeError: If SECRET_STORE_PASSWORD or SECRET_STORE_PATH is unset.
        """
        password = _require_env("SECRET_STORE_PASSWORD")
        file_path = _require_env("SECRET_STORE_PATH")
        settings = {
            "password": password,
            "file_path": file_path,
            "backend": os.environ.get("SECRET_STORE_BACKEND", "file"),
        }
        iterations = os.environ.get("SECRET_STORE_KDF_ITERATIONS")
        if iterations:
            settings["kdf_iterations"] = iterations
        lock_timeout = os.environ.get("SECRET_STORE_LOCK_TIMEOUT")
        if lock_timeout:
            settings["lock_timeout"] = lock_timeout
        logger.debug(
            "Loaded store config from environment: path=%s backend=%s",
            file_path, settings["backend"],
        )
        return cls(**settings)
