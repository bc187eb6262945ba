"""Prefixed snowflake IDs for listings, bids and purchases.

    LST-<int>, BID-<int>, PUR-<int>

The integer packs (ms since EPOCH_MS, machine id, per-ms sequence), so IDs
from one process are unique and increase with creation time. A bid's
authoritative arrival order is still the store-assigned `sequence`, not its id.
"""

import threading
import time
from typing import NamedTuple

LISTING_PREFIX = "LST-"
BID_PREFIX = "BID-"
PURCHASE_PREFIX = "PUR-"

EPOCH_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z
_MACHINE_BITS = 10
_SEQUENCE_BITS = 12
_SEQUENCE_MASK = (1 << _SEQUENCE_BITS) - 1
_MACHINE_MASK = (1 << _MACHINE_BITS) - 1


class IdParts(NamedTuple):
    timestamp_ms: int
    machine_id: int
    sequence: int


class SnowflakeIdGenerator:
    def __init__(self, machine_id: int = 0) -> None:
        if not 0 <= machine_id <= _MACHINE_MASK:
            raise ValueError(f"machine_id must be 0-{_MACHINE_MASK}")
        self._machine_id = machine_id
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_int(self) -> int:
        with self._lock:
            now_ms = time.time_ns() // 1_000_000
            if now_ms > self._last_ms:
                self._sequence = 0
            else:
                # Same millisecond (or clock stepped back): keep counting from the last one
                now_ms = self._last_ms
                self._sequence = (self._sequence + 1) & _SEQUENCE_MASK
                if self._sequence == 0:
                    now_ms += 1
            self._last_ms = now_ms
            return (
                (now_ms - EPOCH_MS) << (_MACHINE_BITS + _SEQUENCE_BITS)
                | self._machine_id << _SEQUENCE_BITS
                | self._sequence
            )

    def next_id(self, prefix: str = "") -> str:
        return f"{prefix}{self.next_int()}"


def decode_id(value: str | int) -> IdParts:
    """Split an ID (with or without prefix) back into its parts."""
    raw = int(str(value).rsplit("-", 1)[-1])
    return IdParts(
        timestamp_ms=(raw >> (_MACHINE_BITS + _SEQUENCE_BITS)) + EPOCH_MS,
        machine_id=(raw >> _SEQUENCE_BITS) & _MACHINE_MASK,
        sequence=raw & _SEQUENCE_MASK,
    )


_default_generator = SnowflakeIdGenerator()


def generate_id(prefix: str = "") -> str:
    return _default_generator.next_id(prefix)
