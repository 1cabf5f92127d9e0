"""
Tests for the file-backed storage backends.

Tests cover:
- Missing file normalized to an empty store
- insert / overwrite / delete semantics and persistence
- Key normalization to str
- Binary ciphertext persistence
- External change detection through the file's mtime
- Read-only snapshot behaviour
- Lock timeout, failed saves, file permissions and malformed store files
"""
import os
import fcntl
import stat

import orjson
import pytest

from secret_store.backends import (
    BACKENDS,
    FileBackend,
    ReadOnlyFileBackend,
    get_backend,
)
from secret_store.backends import file as file_module
from secret_store.exceptions import (
    DuplicateKeyError,
    LockTimeoutError,
    ReadOnlyError,
    StorageError,
)


def bump_mtime(path, seconds: int = 5) -> None:
    """Move the file's mtime forward so a change is always observable."""
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def write_store(path, mapping) -> None:
    path.write_bytes(orjson.dumps(mapping))


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "secrets.json"


@pytest.fixture
def backend(store_path):
    return FileBackend(store_path)


# --- Test Missing File ---

class TestMissingFile:
    """A store file that does not exist is an empty store."""

    def test_get_returns_none(self, backend):
        """Test get() on a missing file returns None."""
        assert backend.get("anything") is None

    def test_keys_empty(self, backend):
        """Test keys() on a missing file is empty."""
        assert backend.keys() == set()

    def test_reload_missing_file(self, backend):
        """Test reload() on a missing file succeeds with an empty store."""
        assert backend.reload() is True
        assert backend.keys() == set()

    def test_file_not_created_by_reads(self, backend, store_path):
        """Test that reads never create the store file."""
        backend.get("anything")
        backend.keys()
        assert not store_path.exists()

    def test_empty_file(self, store_path):
        """Test an empty file is an empty store."""
        store_path.write_bytes(b"")
        assert FileBackend(store_path).keys() == set()


# --- Test Mutations ---

class TestInsert:
    """Tests for insert()."""

    def test_insert_returns_ciphertext(self, backend):
        """Test insert() returns the stored ciphertext."""
        assert backend.insert("foo", b"cipher") == b"cipher"

    def test_insert_persists(self, backend, store_path):
        """Test insert() writes the mapping to disk."""
        backend.insert("foo", b"cipher")
        assert orjson.loads(store_path.read_bytes()) == {"foo": "cipher"}

    def test_insert_duplicate(self, backend):
        """Test a second insert of the same key raises DuplicateKeyError."""
        backend.insert("foo", b"cipher")
        with pytest.raises(DuplicateKeyError) as excinfo:
            backend.insert("foo", b"other")
        assert excinfo.value.key == "foo"
        assert backend.get("foo") == b"cipher"

    def test_insert_preserves_other_keys(self, store_path):
        """Test insert() keeps keys already present in the file."""
        write_store(store_path, {"already": "here"})
        backend = FileBackend(store_path)
        backend.insert("foo", b"cipher")
        data = orjson.loads(store_path.read_bytes())
        assert data["already"] == "here"
        assert data["foo"] == "cipher"

    def test_file_created_owner_only(self, backend, store_path):
        """Test the store file is created readable by its owner only."""
        backend.insert("foo", b"cipher")
        assert stat.S_IMODE(os.stat(store_path).st_mode) == 0o600

    def test_own_write_not_treated_as_external(self, backend, monkeypatch):
        """Test a read right after our own save does not reload the file."""
        backend.insert("foo", b"cipher")
        calls = []
        original = backend._load
        monkeypatch.setattr(backend, "_load", lambda: calls.append(1) or original())
        assert backend.get("foo") == b"cipher"
        assert calls == []


class TestOverwrite:
    """Tests for overwrite()."""

    def test_overwrite_missing_key(self, backend):
        """Test overwrite() creates a key that does not exist."""
        assert backend.overwrite("foo", b"one") == b"one"
        assert backend.get("foo") == b"one"

    def test_overwrite_existing_key(self, backend):
        """Test overwrite() replaces an existing value on disk."""
        backend.insert("foo", b"one")
        backend.overwrite("foo", b"two")
        assert backend.get("foo") == b"two"
        assert FileBackend(backend.file_path).get("foo") == b"two"

    def test_overwrite_after_external_write(self, backend, store_path):
        """Test overwrite never fails even if the key appeared on disk."""
        write_store(store_path, {"foo": "external"})
        bump_mtime(store_path)
        backend.overwrite("foo", b"mine")
        assert backend.get("foo") == b"mine"


class TestDelete:
    """Tests for delete()."""

    def test_delete_missing_key(self, backend, store_path):
        """Test deleting an absent key returns None without touching disk."""
        assert backend.delete("foo") is None
        assert not store_path.exists()

    def test_delete_returns_prior(self, backend):
        """Test delete() returns the removed ciphertext."""
        backend.insert("foo", b"cipher")
        assert backend.delete("foo") == b"cipher"
        assert backend.get("foo") is None

    def test_delete_persists(self, backend, store_path):
        """Test delete() rewrites the file without the key."""
        backend.insert("foo", b"cipher")
        backend.insert("bar", b"other")
        backend.delete("foo")
        assert orjson.loads(store_path.read_bytes()) == {"bar": "other"}

    def test_file_kept_when_last_key_deleted(self, backend, store_path):
        """Test the backend never removes its own file."""
        backend.insert("foo", b"cipher")
        backend.delete("foo")
        assert store_path.exists()
        assert backend.keys() == set()


class TestKeyNormalization:
    """Keys are compared by their str() form."""

    class Symbol:
        def __init__(self, name):
            self.name = name

        def __str__(self):
            return self.name

    def test_int_key(self, backend):
        """Test an int key is stored under its string form."""
        backend.insert(42, b"cipher")
        assert backend.get("42") == b"cipher"
        assert backend.keys() == {"42"}

    def test_symbol_collides_with_string(self, backend):
        """Test a symbol-like key collides with the equal string key."""
        backend.insert("foo", b"cipher")
        with pytest.raises(DuplicateKeyError):
            backend.insert(self.Symbol("foo"), b"other")
        assert backend.delete(self.Symbol("foo")) == b"cipher"


# --- Test Binary Ciphertext ---

class TestBinaryCiphertext:
    """Ciphertext is opaque bytes, not necessarily text."""

    def test_arbitrary_bytes_round_trip(self, backend, store_path):
        """Test every byte value survives a save and a fresh load."""
        payload = bytes(range(256))
        assert backend.insert("k", payload) == payload
        assert backend.get("k") == payload
        assert FileBackend(store_path).get("k") == payload

    def test_text_and_binary_coexist(self, backend, store_path):
        """Test text ciphertext stays plain next to wrapped binary values."""
        backend.insert("text", b"token")
        backend.insert("raw", b"\x80\xff\x00")
        data = orjson.loads(store_path.read_bytes())
        assert data["text"] == "token"
        assert isinstance(data["raw"], dict)
        reopened = FileBackend(store_path)
        assert reopened.get("text") == b"token"
        assert reopened.get("raw") == b"\x80\xff\x00"

    def test_invalid_wrapped_value(self, store_path):
        """Test a corrupt wrapped binary value raises StorageError."""
        write_store(store_path, {"raw": {"__secret_bytes_b64__": "not base64!"}})
        with pytest.raises(StorageError):
            FileBackend(store_path)


# --- Test External Changes ---

class TestExternalChanges:
    """Tests for mtime-based stale cache detection."""

    def test_external_overwrite_visible(self, store_path):
        """Test a change by another backend is seen without reload()."""
        first = FileBackend(store_path)
        first.insert("k", b"old")
        assert first.get("k") == b"old"

        second = FileBackend(store_path)
        second.overwrite("k", b"new")
        bump_mtime(store_path)

        assert first.get("k") == b"new"

    def test_external_insert_visible_in_keys(self, store_path):
        """Test keys() reflects keys added by another backend."""
        first = FileBackend(store_path)
        first.insert("a", b"1")
        second = FileBackend(store_path)
        second.insert("b", b"2")
        bump_mtime(store_path)
        assert first.keys() == {"a", "b"}

    def test_file_created_after_construction(self, store_path):
        """Test a file created after construction is picked up."""
        backend = FileBackend(store_path)
        assert backend.keys() == set()
        write_store(store_path, {"late": "value"})
        assert backend.get("late") == b"value"

    def test_insert_keeps_external_keys(self, store_path):
        """Test insert() merges with keys written by another backend."""
        first = FileBackend(store_path)
        second = FileBackend(store_path)
        second.insert("b", b"2")
        bump_mtime(store_path)
        first.insert("a", b"1")
        assert orjson.loads(store_path.read_bytes()) == {"a": "1", "b": "2"}

    def test_unchanged_file_served_from_cache(self, store_path, monkeypatch):
        """Test an unchanged file is not read again."""
        write_store(store_path, {"k": "v"})
        backend = FileBackend(store_path)
        monkeypatch.setattr(
            backend, "_read", lambda: pytest.fail("cache should have been used"),
        )
        assert backend.get("k") == b"v"
        assert backend.keys() == {"k"}

    def test_explicit_reload(self, store_path):
        """Test reload() re-reads the file unconditionally."""
        write_store(store_path, {"k": "v1"})
        backend = FileBackend(store_path)
        write_store(store_path, {"k": "v2"})
        assert backend.reload() is True
        assert backend.get("k") == b"v2"


# --- Test Read-Only Backend ---

class TestReadOnlyBackend:
    """Tests for ReadOnlyFileBackend."""

    @pytest.fixture
    def snapshot(self, store_path):
        write_store(store_path, {"k": "v"})
        return ReadOnlyFileBackend(store_path)

    def test_permits_writes(self, snapshot, backend):
        """Test permits_writes() for both backend variants."""
        assert snapshot.permits_writes() is False
        assert backend.permits_writes() is True

    def test_reads(self, snapshot):
        """Test the snapshot serves the file contents."""
        assert snapshot.get("k") == b"v"
        assert snapshot.keys() == {"k"}

    @pytest.mark.parametrize("operation", ["insert", "overwrite"])
    def test_writes_rejected(self, snapshot, store_path, operation):
        """Test insert/overwrite raise ReadOnlyError and write nothing."""
        before = store_path.read_bytes()
        with pytest.raises(ReadOnlyError):
            getattr(snapshot, operation)("new", b"value")
        assert store_path.read_bytes() == before
        assert snapshot.get("new") is None

    def test_delete_rejected(self, snapshot, store_path):
        """Test delete raises ReadOnlyError and keeps the key."""
        before = store_path.read_bytes()
        with pytest.raises(ReadOnlyError):
            snapshot.delete("k")
        assert store_path.read_bytes() == before
        assert snapshot.get("k") == b"v"

    def test_never_sees_later_changes(self, snapshot, store_path):
        """Test the snapshot ignores later writes, even after reload()."""
        writer = FileBackend(store_path)
        writer.overwrite("k", b"changed")
        writer.insert("extra", b"value")
        bump_mtime(store_path)

        assert snapshot.get("k") == b"v"
        assert snapshot.keys() == {"k"}
        assert snapshot.reload() is True
        assert snapshot.get("k") == b"v"
        assert snapshot.get("extra") is None

    def test_missing_file(self, store_path):
        """Test a snapshot of a missing file is empty and creates nothing."""
        snapshot = ReadOnlyFileBackend(store_path)
        assert snapshot.keys() == set()
        assert not store_path.exists()


# --- Test Failures ---

class TestStorageFailures:
    """Tests for lock timeouts, failed saves and unreadable store files."""

    def test_lock_timeout(self, store_path):
        """Test a held lock raises LockTimeoutError and drops the write."""
        backend = FileBackend(store_path, lock_timeout=0.1)
        backend.insert("before", b"1")
        with open(store_path, "rb") as holder:
            fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(LockTimeoutError):
                    backend.insert("blocked", b"2")
            finally:
                fcntl.flock(holder.fileno(), fcntl.LOCK_UN)
        assert backend.get("blocked") is None
        assert backend.get("before") == b"1"

    def test_lock_released_after_write(self, backend, store_path):
        """Test the lock is free once a save completes."""
        backend.insert("foo", b"cipher")
        with open(store_path, "rb") as other:
            fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(other.fileno(), fcntl.LOCK_UN)

    def test_encode_failure_drops_cache(self, backend, store_path, monkeypatch):
        """Test a save that fails while encoding leaves no phantom key."""
        def broken_serialize(mapping):
            raise ValueError("cannot encode")

        monkeypatch.setattr(file_module, "serialize", broken_serialize)
        with pytest.raises(StorageError, match="encode"):
            backend.insert("k", b"cipher")
        assert backend.get("k") is None
        assert not store_path.exists()

    def test_encode_failure_keeps_file_contents(self, backend, store_path, monkeypatch):
        """Test a failed save leaves the cache matching the file on disk."""
        backend.insert("kept", b"1")

        def broken_serialize(mapping):
            raise TypeError("cannot encode")

        monkeypatch.setattr(file_module, "serialize", broken_serialize)
        with pytest.raises(StorageError):
            backend.insert("lost", b"2")
        assert backend.keys() == {"kept"}

    def test_invalid_json(self, store_path):
        """Test an unparsable store file raises StorageError."""
        store_path.write_bytes(b"{not json")
        with pytest.raises(StorageError):
            FileBackend(store_path)

    def test_not_a_mapping(self, store_path):
        """Test a non-object store file raises StorageError."""
        store_path.write_bytes(b"[1, 2, 3]")
        with pytest.raises(StorageError, match="JSON object"):
            FileBackend(store_path)

    def test_unwritable_directory(self, tmp_path):
        """Test a save into a missing directory raises StorageError."""
        backend = FileBackend(tmp_path / "missing-dir" / "secrets.json")
        with pytest.raises(StorageError):
            backend.insert("foo", b"cipher")
        assert backend.get("foo") is None


# --- Test Registry ---

class TestRegistry:
    """Tests for the backend registry."""

    def test_known_backends(self):
        """Test both backends are registered by name."""
        assert get_backend("file") is FileBackend
        assert get_backend("readonly") is ReadOnlyFileBackend
        assert set(BACKENDS) == {"file", "readonly"}

    def test_unknown_backend(self):
        """Test an unknown backend name raises ValueError."""
        with pytest.raises(ValueError, match="Unsupported backend"):
            get_backend("s3")
