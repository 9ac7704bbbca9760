import queue
import threading

import pytest

from stacks.task_queue import PrioritySelector, TaskQueue
from stacks.tasks import (
    HIGHEST_PRIORITY,
    LOWEST_PRIORITY,
    AnalyzeBook,
    ConvertBook,
    HashBook,
    RebuildIndex,
    Task,
)


def _drain(task_queue):
    tasks = []
    while not task_queue.empty():
        tasks.append(task_queue.get(timeout=0))
        task_queue.task_done()
    return tasks


def test_lowest_priority_value_first():
    task_queue = TaskQueue()
    task_queue.put(AnalyzeBook("a", priority=6))
    task_queue.put(AnalyzeBook("b", priority=HIGHEST_PRIORITY))
    task_queue.put(AnalyzeBook("c", priority=3))

    assert [t.book_id for t in _drain(task_queue)] == ["b", "c", "a"]


def test_fifo_within_same_priority():
    task_queue = TaskQueue()
    for book_id in ("1", "2", "3"):
        task_queue.put(HashBook(book_id))

    assert [t.book_id for t in _drain(task_queue)] == ["1", "2", "3"]


def test_duplicate_pending_task_is_dropped():
    task_queue = TaskQueue()

    assert task_queue.put(AnalyzeBook("a"))
    assert not task_queue.put(AnalyzeBook("a", priority=HIGHEST_PRIORITY))
    assert task_queue.put(HashBook("a"))
    assert task_queue.qsize() == 2


def test_same_task_can_be_queued_again_once_taken():
    task_queue = TaskQueue()
    task_queue.put(RebuildIndex())
    task_queue.get(timeout=0)

    assert task_queue.put(RebuildIndex())


def test_selector_limits_priority_band():
    task_queue = TaskQueue()
    task_queue.put(ConvertBook("slow", priority=LOWEST_PRIORITY))
    task_queue.put(AnalyzeBook("fast", priority=5))

    restricted = PrioritySelector(max_priority=LOWEST_PRIORITY - 1)
    assert task_queue.get(restricted, timeout=0).book_id == "fast"
    with pytest.raises(queue.Empty):
        task_queue.get(restricted, timeout=0.05)
    assert task_queue.get(timeout=0).book_id == "slow"


def test_selector_bounds_are_inclusive():
    selector = PrioritySelector(min_priority=2, max_priority=4)

    assert selector.accepts(HashBook("a", priority=2))
    assert selector.accepts(HashBook("a", priority=4))
    assert not selector.accepts(HashBook("a", priority=1))
    assert not selector.accepts(HashBook("a", priority=5))
    assert PrioritySelector().accepts(HashBook("a", priority=100))


def test_get_times_out_on_empty_queue():
    with pytest.raises(queue.Empty):
        TaskQueue().get(timeout=0.05)


def test_get_wakes_up_on_put():
    task_queue = TaskQueue()
    received = []

    consumer = threading.Thread(target=lambda: received.append(task_queue.get(timeout=5)))
    consumer.start()
    task_queue.put(HashBook("late"))
    consumer.join(timeout=5)

    assert [t.book_id for t in received] == ["late"]


def test_join_waits_for_task_done():
    task_queue = TaskQueue()
    assert task_queue.join(timeout=0)

    task_queue.put(HashBook("a"))
    task_queue.get(timeout=0)
    assert not task_queue.join(timeout=0.05)

    task_queue.task_done()
    assert task_queue.join(timeout=0)


def test_task_done_too_many_times():
    with pytest.raises(ValueError):
        TaskQueue().task_done()


def test_pending_and_clear():
    task_queue = TaskQueue()
    task_queue.put(HashBook("b", priority=5))
    task_queue.put(HashBook("a", priority=1))

    assert [t.book_id for t in task_queue.pending()] == ["a", "b"]
    assert task_queue.clear() == 2
    assert task_queue.empty()
    assert task_queue.join(timeout=0)
    assert task_queue.put(HashBook("a"))


def test_task_base_cannot_be_queued_directly():
    with pytest.raises(TypeError):
        Task()
