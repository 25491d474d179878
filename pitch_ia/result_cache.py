# pitch_ia/result_cache.py

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from pitch_ia.entities import PitchRecord


def normalize_input(text: str) -> str:
    """Cache key of a project description: trimmed, case preserved."""
    return (text or "").strip()


class ReadWriteLock:
    """
    Multiple readers / single writer.

    - readers never wait for other readers
    - a writer waits for in-flight readers to drain and blocks new readers
      while it is waiting or writing (writers are not starved)
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class ResultCache:
    """
    Process-local memo of finished pitches, keyed by normalized description.

    - No TTL, no eviction, no persistence.
    - Stores and hands out copies, so a record can't be mutated once cached.
    - The write lock is only held for the dict mutation, never during generation.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._items: Dict[str, PitchRecord] = {}

    def get(self, key: str) -> Optional[PitchRecord]:
        key = normalize_input(key)
        with self._lock.read_locked():
            record = self._items.get(key)
        return record.copy() if record is not None else None

    def put(self, key: str, record: PitchRecord) -> None:
        key = normalize_input(key)
        if not key or record is None:
            return
        stored = record.copy()
        with self._lock.write_locked():
            self._items[key] = stored

    def __contains__(self, key: str) -> bool:
        with self._lock.read_locked():
            return normalize_input(key) in self._items

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._items)

    def snapshot(self) -> List[str]:
        """
        Return a copy of all keys currently cached.
        """
        with self._lock.read_locked():
            return list(self._items)

    def clear(self) -> None:
        with self._lock.write_locked():
            self._items.clear()


# Global, process-local singleton
RESULT_CACHE = ResultCache()
