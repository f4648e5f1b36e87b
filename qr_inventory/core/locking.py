"""
Per-item-code serialization for read-check-write sequences.

Two callers touching the same item code never interleave inside ``hold``;
callers on disjoint codes run concurrently.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class ItemLockRegistry:
    """Registry of one lock per item code"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, code: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(code)
            if lock is None:
                lock = threading.Lock()
                self._locks[code] = lock
            return lock

    @contextmanager
    def hold(self, *codes: str) -> Iterator[List[str]]:
        """Acquire the locks of every distinct code, always in sorted order"""
        ordered = sorted(set(codes))
        acquired: List[threading.Lock] = []
        try:
            for code in ordered:
                lock = self._lock_for(code)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


# Shared by every service in the process
item_locks = ItemLockRegistry()

# Scheduling records are serialized per location
location_locks = ItemLockRegistry()
