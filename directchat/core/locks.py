import threading
from contextlib import contextmanager
from typing import Hashable


class KeyedLock:
    """
    One lock per key, created on demand.

    A key's lock is dropped again once nobody holds or waits for it, so
    callers working on different keys never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, list] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
