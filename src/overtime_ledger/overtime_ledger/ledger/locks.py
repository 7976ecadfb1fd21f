from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """In-process mutex per key.

    Operations on the same aggregation key run one at a time; different keys
    never contend. Entries are reference counted and dropped when unused.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = [threading.Lock(), 0]
            slot[1] += 1

        slot[0].acquire()
        try:
            yield
        finally:
            slot[0].release()
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    self._slots.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)
