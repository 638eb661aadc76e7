"""
Blocking FIFO queue that knows how many consumers are waiting on it.
"""

import queue
import threading
import time
from typing import Optional


class WorkQueue(queue.Queue):
    """
    ``queue.Queue`` that counts the threads blocked in ``get()``.

    A thread is counted only while it is parked waiting for an item, so
    when the queue is empty and ``num_waiting`` equals the number of
    consumers, no consumer is holding an item it took from the queue.
    """

    def __init__(self, maxsize: int = 0):
        super().__init__(maxsize)
        self._num_waiting = 0
        self.waiters_changed = threading.Condition(self.mutex)

    @property
    def num_waiting(self) -> int:
        with self.mutex:
            return self._num_waiting

    def get(self, block: bool = True, timeout: Optional[float] = None):
        with self.not_empty:
            if not block:
                if not self._qsize():
                    raise queue.Empty
            elif timeout is None:
                while not self._qsize():
                    self._wait_for_item(None)
            elif timeout < 0:
                raise ValueError("'timeout' must be a non-negative number")
            else:
                endtime = time.monotonic() + timeout
                while not self._qsize():
                    remaining = endtime - time.monotonic()
                    if remaining <= 0.0:
                        raise queue.Empty
                    self._wait_for_item(remaining)
            item = self._get()
            self.not_full.notify()
            return item

    def _wait_for_item(self, timeout: Optional[float]):
        # caller holds self.mutex
        self._num_waiting += 1
        self.waiters_changed.notify_all()
        try:
            self.not_empty.wait(timeout)
        finally:
            self._num_waiting -= 1

    def wait_for_waiters(self, count: int, timeout: Optional[float] = None) -> bool:
        """
        Block until at least *count* threads are waiting in ``get()``.

        Returns:
            False if *timeout* expired first
        """
        with self.waiters_changed:
            return self.waiters_changed.wait_for(lambda: self._num_waiting >= count, timeout)

    def clear(self) -> int:
        """Drop every queued item and return how many were dropped."""
        with self.mutex:
            dropped = self._qsize()
            self.queue.clear()
            self.not_full.notify_all()
            return dropped
