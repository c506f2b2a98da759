"""Serial number allocation backed by a durable, conditionally-written counter."""
from __future__ import annotations

from leaf_ca.serials.allocator import (
    ExponentialBackoff,
    SerialAllocator,
    decode_serial,
    encode_serial,
    no_backoff,
)
from leaf_ca.serials.store import (
    CounterAlreadyExistsError,
    CounterNotFoundError,
    CounterRecord,
    CounterStore,
    CounterStoreError,
    FilesystemCounterStore,
    InMemoryCounterStore,
    VersionMismatchError,
)

__all__ = [
    "CounterAlreadyExistsError",
    "CounterNotFoundError",
    "CounterRecord",
    "CounterStore",
    "CounterStoreError",
    "ExponentialBackoff",
    "FilesystemCounterStore",
    "InMemoryCounterStore",
    "SerialAllocator",
    "VersionMismatchError",
    "decode_serial",
    "encode_serial",
    "no_backoff",
]
