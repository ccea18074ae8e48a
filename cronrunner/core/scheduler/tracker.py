# cronrunner/core/scheduler/tracker.py
from __future__ import annotations
import threading


class Tracker:
    """
    Set of job slots whose handler is currently executing.

    The scheduling loop is the only writer, but status queries may come from
    any thread, so every access goes through a lock.

    A Runner creates its own Tracker unless one is passed in; share an
    instance between runners only when they should block each other's slots.
    """

    def __init__(self) -> None:
        self._running: set[int] = set()
        self._lock = threading.Lock()

    def running(self, slot: int) -> bool:
        """Check if the slot is marked as running."""
        with self._lock:
            return slot in self._running

    def start(self, slot: int) -> int:
        """Mark the slot as running. Returns the number of running slots."""
        with self._lock:
            self._running.add(slot)
            return len(self._running)

    def stop(self, slot: int) -> int:
        """Unmark the slot. Returns the number of running slots."""
        with self._lock:
            self._running.discard(slot)
            return len(self._running)

    def snapshot(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._running)

    def __len__(self) -> int:
        with self._lock:
            return len(self._running)

    def __repr__(self) -> str:
        return f'Tracker(running={sorted(self.snapshot())})'
