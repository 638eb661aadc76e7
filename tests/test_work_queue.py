"""
Tests for the waiter-counting work queue.
"""

import queue
import threading

import pytest

from arachnid.crawler.work_queue import WorkQueue


def start_consumers(work_queue, count, results):
    threads = []
    for _ in range(count):
        thread = threading.Thread(target=lambda: results.append(work_queue.get()), daemon=True)
        thread.start()
        threads.append(thread)
    return threads


def test_fifo_order():
    work_queue = WorkQueue()
    for item in range(3):
        work_queue.put(item)

    assert [work_queue.get() for _ in range(3)] == [0, 1, 2]


def test_counts_blocked_consumers():
    work_queue = WorkQueue()
    results = []
    threads = start_consumers(work_queue, 3, results)

    assert work_queue.wait_for_waiters(3, timeout=5)
    assert work_queue.num_waiting == 3

    for item in range(3):
        work_queue.put(item)
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(results) == [0, 1, 2]
    assert work_queue.num_waiting == 0


def test_wait_for_waiters_times_out():
    work_queue = WorkQueue()
    start_consumers(work_queue, 1, [])

    assert not work_queue.wait_for_waiters(2, timeout=0.1)
    work_queue.put(None)


def test_wait_for_zero_waiters_returns_at_once():
    assert WorkQueue().wait_for_waiters(0, timeout=0)


def test_non_blocking_get_on_empty_queue():
    work_queue = WorkQueue()

    with pytest.raises(queue.Empty):
        work_queue.get(block=False)
    with pytest.raises(queue.Empty):
        work_queue.get(timeout=0.01)
    assert work_queue.num_waiting == 0


def test_negative_timeout():
    with pytest.raises(ValueError):
        WorkQueue().get(timeout=-1)


def test_clear_drops_items():
    work_queue = WorkQueue()
    for item in range(5):
        work_queue.put(item)

    assert work_queue.clear() == 5
    assert work_queue.empty()
    assert work_queue.clear() == 0
