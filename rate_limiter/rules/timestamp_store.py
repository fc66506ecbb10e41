"""Per-client last-call timestamp store.

Notes:
- Per-process only: entries live in memory and are lost on restart.
- Thread-safe with per-key locking: the store-level lock only guards slot
  lookup, creation and removal. Reading the clock and replacing a key's
  timestamp both happen under that key's own lock.
- Entries are never dropped implicitly. ``evict_idle`` is the only way to
  remove them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Hashable

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    last_seen: float | None = None
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class TimestampStore:
    """Mapping of client identifier to the last observed call time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: dict[Hashable, _Slot] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._slots

    def _get_or_create_slot(self, key: Hashable) -> _Slot:
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
            return slot

    def record(self, key: Hashable, clock: Callable[[], float]) -> tuple[float | None, float]:
        """Read the clock and store the result as the key's latest call time.

        The clock is read while the key's lock is held, so recorded times for
        one key never go backwards relative to the order of the calls.

        Args:
            key: Client identifier.
            clock: Time source returning seconds.

        Returns:
            Tuple of (previous timestamp or None if never seen, recorded timestamp).

        Raises:
            Exception: Whatever ``clock`` raises. The key is left untouched.
        """

        while True:
            slot = self._get_or_create_slot(key)
            try:
                with slot.lock:
                    # Lost a race with evict_idle; retry on a fresh slot.
                    if slot.evicted:
                        continue
                    try:
                        now = clock()
                    except Exception:
                        # Never leave an empty slot behind for a failed first call.
                        if slot.last_seen is None:
                            slot.evicted = True
                        raise
                    previous = slot.last_seen
                    slot.last_seen = now
                    return previous, now
            except Exception:
                if slot.evicted:
                    self._discard_slot(key, slot)
                raise

    def _discard_slot(self, key: Hashable, slot: _Slot) -> None:
        with self._lock:
            if self._slots.get(key) is slot:
                del self._slots[key]

    def get(self, key: Hashable) -> float | None:
        """Return the last recorded timestamp for key without updating it."""

        with self._lock:
            slot = self._slots.get(key)
        if slot is None:
            return None
        with slot.lock:
            return None if slot.evicted else slot.last_seen

    def _evict_if_idle(self, key: Hashable, now: float, max_idle_seconds: float) -> bool:
        with self._lock:
            slot = self._slots.get(key)
            # A held slot lock means a call is being recorded, so it is not idle.
            if slot is None or not slot.lock.acquire(blocking=False):
                return False
            try:
                if slot.last_seen is None or now - slot.last_seen < max_idle_seconds:
                    return False
                slot.evicted = True
            finally:
                slot.lock.release()
            del self._slots[key]
            return True

    def evict_idle(self, *, now: float, max_idle_seconds: float) -> int:
        """Remove entries whose last call is older than ``max_idle_seconds``.

        Keys are snapshotted first and then checked one by one, so other
        clients are only held up for a single slot check at a time.

        Args:
            now: Current time on the same clock used for recorded timestamps.
            max_idle_seconds: Minimum idle age for an entry to be removed.

        Returns:
            Number of removed entries.

        Raises:
            ValueError: If max_idle_seconds is not positive.
        """

        if max_idle_seconds <= 0:
            raise ValueError("max_idle_seconds must be > 0")

        with self._lock:
            keys = list(self._slots)

        removed = sum(1 for key in keys if self._evict_if_idle(key, now, max_idle_seconds))

        if removed:
            logger.debug(
                "timestamp_store.evicted",
                extra={
                    "removed": removed,
                    "remaining": len(self),
                    "max_idle_s": max_idle_seconds,
                },
            )
        return removed

    def clear(self) -> None:
        """Remove all entries."""

        with self._lock:
            for slot in self._slots.values():
                with slot.lock:
                    slot.evicted = True
            self._slots.clear()
