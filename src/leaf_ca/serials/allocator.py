"""Serial number allocation with optimistic concurrency.

SerialAllocator hands out certificate serial numbers backed by a single
durable counter record. Concurrent allocators coordinate only through the
store's conditional write: each round reads the counter, increments it,
and writes it back gated on the version tag it read. Losers of the race
retry, up to a fixed number of attempts.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Callable

from leaf_ca.errors import AllocationExhaustedError, SerialOverflowError
from leaf_ca.serials.store import (
    CounterAlreadyExistsError,
    CounterNotFoundError,
    CounterRecord,
    CounterStore,
    VersionMismatchError,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTER_KEY = "serial"
DEFAULT_MAX_ATTEMPTS = 10
MAX_SERIAL_LENGTH = 20

_INITIAL_VALUE = b"\x00"

BackoffStrategy = Callable[[int], float]


def encode_serial(value: int, max_length: int = MAX_SERIAL_LENGTH) -> bytes:
    """Encode *value* as minimal big-endian bytes with the top bit clear.

    A leading zero byte is added when the most significant bit would
    otherwise be set, so the bytes read back as a non-negative DER INTEGER.

    Raises
    ------
    SerialOverflowError
        If the encoding needs more than *max_length* bytes.
    ValueError
        If *value* is negative.
    """
    if value < 0:
        raise ValueError(f"Serial numbers cannot be negative, got {value}")
    length = value.bit_length() // 8 + 1
    if length > max_length:
        raise SerialOverflowError(
            f"Serial {value:#x} needs {length} bytes, budget is {max_length}"
        )
    return value.to_bytes(length, "big")


def decode_serial(data: bytes) -> int:
    """Interpret *data* as an unsigned big-endian integer."""
    return int.from_bytes(data, "big")


def no_backoff(attempt: int) -> float:
    """Retry immediately."""
    return 0.0


class ExponentialBackoff:
    """Exponential backoff with optional full jitter.

    Parameters
    ----------
    base_delay:
        Delay in seconds after the first conflict.
    max_delay:
        Upper bound on any single delay.
    jitter:
        When True, the delay is drawn uniformly from ``[0, computed]``.
    rng:
        Random source, injectable for tests.
    """

    def __init__(
        self,
        base_delay: float = 0.01,
        max_delay: float = 0.5,
        jitter: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()

    def __call__(self, attempt: int) -> float:
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            return self._rng.uniform(0.0, delay)
        return delay


class SerialAllocator:
    """Allocates unique, strictly increasing serial numbers.

    Parameters
    ----------
    store:
        Durable counter storage supporting conditional writes.
    counter_key:
        Well-known key of the counter record for this issuer.
    max_attempts:
        Number of conditional writes tried before giving up.
    max_length:
        Byte budget for an encoded serial.
    backoff:
        Maps the 1-based number of the failed attempt to a delay in seconds.
    sleep:
        Sleep function, injectable for tests.
    """

    def __init__(
        self,
        store: CounterStore,
        counter_key: str = DEFAULT_COUNTER_KEY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_length: int = MAX_SERIAL_LENGTH,
        backoff: BackoffStrategy = no_backoff,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._store = store
        self._counter_key = counter_key
        self._max_attempts = max_attempts
        self._max_length = max_length
        self._backoff = backoff
        self._sleep = sleep

    @property
    def counter_key(self) -> str:
        return self._counter_key

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def allocate_serial(self) -> bytes:
        """Allocate the next serial number.

        Returns
        -------
        bytes
            The value written to the counter, big-endian and sign-safe.

        Raises
        ------
        AllocationExhaustedError
            If every one of ``max_attempts`` conditional writes was rejected.
        SerialOverflowError
            If the counter has reached the end of the serial space.
        """
        for attempt in range(1, self._max_attempts + 1):
            record = self._read_or_create()
            serial = encode_serial(decode_serial(record.value) + 1, self._max_length)
            try:
                self._store.write_counter(self._counter_key, serial, record.version_tag)
            except VersionMismatchError:
                logger.debug(
                    "Serial counter %r changed concurrently (attempt %d/%d)",
                    self._counter_key,
                    attempt,
                    self._max_attempts,
                )
                if attempt < self._max_attempts:
                    delay = self._backoff(attempt)
                    if delay > 0:
                        self._sleep(delay)
                continue

            logger.info("Allocated serial %s from counter %r", serial.hex(), self._counter_key)
            return serial

        logger.warning(
            "Serial allocation for counter %r exhausted after %d attempts",
            self._counter_key,
            self._max_attempts,
        )
        raise AllocationExhaustedError(self._counter_key, self._max_attempts)

    def current_serial(self) -> bytes | None:
        """Return the most recently allocated serial, or None if none exists yet."""
        try:
            return self._store.read_counter(self._counter_key).value
        except CounterNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_or_create(self) -> CounterRecord:
        try:
            return self._store.read_counter(self._counter_key)
        except CounterNotFoundError:
            pass

        try:
            version_tag = self._store.create_counter(self._counter_key, _INITIAL_VALUE)
        except CounterAlreadyExistsError:
            logger.debug("Serial counter %r was created concurrently", self._counter_key)
            return self._store.read_counter(self._counter_key)

        logger.info("Initialised serial counter %r", self._counter_key)
        return CounterRecord(value=_INITIAL_VALUE, version_tag=version_tag)
