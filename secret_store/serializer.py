"""
Store file codec.

The store file is a single JSON object mapping key names to ciphertext.
There is no header, version tag or checksum; an empty or missing file is
an empty store.

Ciphertext that is valid UTF-8 (the default cipher emits ASCII tokens) is
stored as plain text. Any other byte string is wrapped as
{"__secret_bytes_b64__": "<base64>"} so arbitrary ciphertext round-trips.
"""
import base64
import binascii
from typing import Any, Optional

import orjson

from .exceptions import StorageError

_BYTES_WRAPPER_KEY = "__secret_bytes_b64__"


def _encode_value(value: Any) -> Any:
    if not isinstance(value, bytes):
        return str(value)
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}


def _decode_value(key: str, value: Any) -> bytes:
    if isinstance(value, dict) and _BYTES_WRAPPER_KEY in value and len(value) == 1:
        try:
            return base64.b64decode(value[_BYTES_WRAPPER_KEY], validate=True)
        except (binascii.Error, TypeError) as err:
            raise StorageError(
                f"Store file holds an invalid binary value for key {key}", key=key,
            ) from err
    return str(value).encode("utf-8")


def serialize(mapping: dict[str, bytes]) -> bytes:
    """Encode a key -> ciphertext mapping as JSON bytes.

    Args:
        mapping: Key names to ciphertext bytes.

    Returns:
        orjson-encoded bytes, keys sorted, trailing newline.
    """
    document = {str(key): _encode_value(value) for key, value in mapping.items()}
    return orjson.dumps(
        document,
        option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS | orjson.OPT_APPEND_NEWLINE,
    )


def deserialize(data: Optional[bytes]) -> dict[str, bytes]:
    """Decode store file contents into a key -> ciphertext mapping.

    Args:
        data: Raw file contents, or None when the file does not exist.

    Returns:
        Mapping of key names to ciphertext bytes (empty for blank input).

    Raises:
        StorageError: If the contents are not a JSON object, or a wrapped
            binary value is not valid base64.
    """
    if data is None or not data.strip():
        return {}
    try:
        document = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise StorageError(f"Store file is not valid JSON: {err}") from err
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise StorageError(
            f"Store file must contain a JSON object, got {type(document).__name__}"
        )
    return {
        str(key): _decode_value(str(key), value)
        for key, value in document.items()
    }
