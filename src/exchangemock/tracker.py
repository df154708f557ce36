"""
ExchangeMock Request Tracker

Counts how many times each declared endpoint has been hit.

The count decides which response of an exchange's sequence is served, so
reading and incrementing it must happen as one step: two concurrent requests
to the same endpoint must never observe the same count. Each identity gets
its own lock, created lazily under a registry lock.
"""

import threading
from typing import Dict, Hashable


class RequestTracker:
    """
    Thread-safe per-endpoint invocation counter.

    Example:
        tracker = RequestTracker()
        tracker.next_count(('GET', '/status'))  # 0
        tracker.next_count(('GET', '/status'))  # 1
        tracker.count(('GET', '/status'))       # 2
    """

    def __init__(self):
        self._counts: Dict[Hashable, int] = {}
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, identity: Hashable) -> threading.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(identity, threading.Lock())
        return lock

    def next_count(self, identity: Hashable) -> int:
        """
        Return the current count for `identity` and increment it.

        Args:
            identity: Endpoint identity, usually a (method, path) tuple

        Returns:
            Number of earlier invocations (0 on the first call)
        """
        with self._lock_for(identity):
            current = self._counts.get(identity, 0)
            self._counts[identity] = current + 1
            return current

    def count(self, identity: Hashable) -> int:
        """Number of invocations recorded for `identity`."""
        return self._counts.get(identity, 0)

    def snapshot(self) -> Dict[Hashable, int]:
        """Copy of all recorded counts."""
        with self._registry_lock:
            return dict(self._counts)

    def clear(self):
        """Forget every recorded count."""
        with self._registry_lock:
            self._counts.clear()
            self._locks.clear()

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, identity: Hashable) -> bool:
        return identity in self._counts
