"""Serial counter storage — abstract contract and two implementations.

CounterStore defines the compare-and-swap contract the allocator relies on.
InMemoryCounterStore keeps counters in process memory; FilesystemCounterStore
persists each counter as a single file of raw big-endian serial bytes under
a configurable base directory.
"""
from __future__ import annotations

import fcntl
import hashlib
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator


class CounterStoreError(Exception):
    """Base class for counter store conditions the allocator understands."""


class CounterNotFoundError(CounterStoreError, KeyError):
    """Raised when no counter record exists for a key."""


class CounterAlreadyExistsError(CounterStoreError):
    """Raised when create-if-absent finds an existing record."""


class VersionMismatchError(CounterStoreError):
    """Raised when a conditional write observes a stale version tag."""


@dataclass(frozen=True)
class CounterRecord:
    """A counter value together with its optimistic-concurrency version tag.

    Parameters
    ----------
    value:
        Raw unsigned big-endian serial bytes.
    version_tag:
        Opaque fencing token; a write is accepted only if it still matches.
    """

    value: bytes
    version_tag: str


class CounterStore(ABC):
    """Abstract base class for durable serial counter storage."""

    @abstractmethod
    def read_counter(self, key: str) -> CounterRecord:
        """Return the current record for *key*.

        Raises
        ------
        CounterNotFoundError
            If no record exists for *key*.
        """

    @abstractmethod
    def create_counter(self, key: str, value: bytes) -> str:
        """Create the record for *key* only if it does not exist yet.

        Returns
        -------
        str
            The version tag of the newly created record.

        Raises
        ------
        CounterAlreadyExistsError
            If a record already exists for *key*.
        """

    @abstractmethod
    def write_counter(self, key: str, value: bytes, expected_version_tag: str) -> str:
        """Replace the value for *key* if its version tag still matches.

        Returns
        -------
        str
            The version tag of the updated record.

        Raises
        ------
        CounterNotFoundError
            If no record exists for *key*.
        VersionMismatchError
            If the stored version tag differs from *expected_version_tag*.
        """


class InMemoryCounterStore(CounterStore):
    """Thread-safe, process-local counter store.

    Version tags are a per-key revision number rendered as a string.
    """

    def __init__(self) -> None:
        self._records: dict[str, tuple[bytes, int]] = {}
        self._lock = threading.Lock()

    def read_counter(self, key: str) -> CounterRecord:
        with self._lock:
            if key not in self._records:
                raise CounterNotFoundError(key)
            value, revision = self._records[key]
        return CounterRecord(value=value, version_tag=str(revision))

    def create_counter(self, key: str, value: bytes) -> str:
        with self._lock:
            if key in self._records:
                raise CounterAlreadyExistsError(key)
            self._records[key] = (bytes(value), 1)
        return "1"

    def write_counter(self, key: str, value: bytes, expected_version_tag: str) -> str:
        with self._lock:
            if key not in self._records:
                raise CounterNotFoundError(key)
            _, revision = self._records[key]
            if str(revision) != expected_version_tag:
                raise VersionMismatchError(
                    f"Counter {key!r} is at version {revision}, "
                    f"expected {expected_version_tag}"
                )
            revision += 1
            self._records[key] = (bytes(value), revision)
        return str(revision)


class FilesystemCounterStore(CounterStore):
    """Filesystem-backed counter store.

    Each counter lives in ``<base_dir>/<key>`` and contains nothing but the
    serial bytes. The version tag is the SHA-256 digest of those bytes.
    Conditional operations hold an exclusive ``flock`` on ``<key>.lock``
    so that separate processes sharing *base_dir* see a consistent
    compare-and-swap; replacement is atomic via ``os.replace``.

    Parameters
    ----------
    base_dir:
        Directory holding counter files. Created if missing.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # CounterStore interface
    # ------------------------------------------------------------------

    def read_counter(self, key: str) -> CounterRecord:
        with self._locked(key, exclusive=False):
            value = self._read_value(key)
        return CounterRecord(value=value, version_tag=_version_tag(value))

    def create_counter(self, key: str, value: bytes) -> str:
        with self._locked(key, exclusive=True):
            if self._counter_path(key).exists():
                raise CounterAlreadyExistsError(key)
            self._replace_value(key, value)
        return _version_tag(value)

    def write_counter(self, key: str, value: bytes, expected_version_tag: str) -> str:
        with self._locked(key, exclusive=True):
            current = self._read_value(key)
            if _version_tag(current) != expected_version_tag:
                raise VersionMismatchError(
                    f"Counter {key!r} changed since version {expected_version_tag}"
                )
            self._replace_value(key, value)
        return _version_tag(value)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _counter_path(self, key: str) -> Path:
        safe_name = key.replace("/", "_").replace("\\", "_")
        return self._base_dir / safe_name

    def _read_value(self, key: str) -> bytes:
        try:
            return self._counter_path(key).read_bytes()
        except FileNotFoundError:
            raise CounterNotFoundError(key) from None

    def _replace_value(self, key: str, value: bytes) -> None:
        target = self._counter_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._base_dir, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @contextmanager
    def _locked(self, key: str, exclusive: bool) -> Iterator[None]:
        lock_path = self._counter_path(key).with_name(self._counter_path(key).name + ".lock")
        with open(lock_path, "a+b") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def _version_tag(value: bytes) -> str:
    return hashlib.sha256(value).hexdigest()
