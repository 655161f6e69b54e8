"""Keyed re-entrant locks.

Keys are ``(kind, id)`` tuples, e.g. ``("sku", "KB-001")`` or
``("order", order_id)``. Lock order across kinds is
wave -> order -> pick task -> sku; put-away assignment and put-away tasks
take their own keys and never wait on order or wave locks.
"""

import threading
from contextlib import ExitStack, contextmanager


class KeyedLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, threading.RLock] = {}

    def lock_for(self, key: tuple) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: tuple):
        """Acquire every key in sorted order and release them on exit."""
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.lock_for(key))
            yield
