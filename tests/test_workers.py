import threading

import pytest

from conftest import create_cbz
from stacks.database import session_scope
from stacks.models import MediaStatus
from stacks.repository import Repository
from stacks.task_handler import TaskResult, TaskStatus
from stacks.task_queue import PrioritySelector, TaskQueue
from stacks.tasks import LOWEST_PRIORITY, HashBook, ScanLibrary
from stacks.workers import TaskWorkerPool, default_selectors


class RecordingHandler:
    """Stands in for TaskHandler and records which thread ran each task."""

    def __init__(self):
        self.calls = []
        self.lock = threading.Lock()

    def handle_task(self, task):
        with self.lock:
            self.calls.append((task, threading.current_thread().name))
        return TaskResult(task, TaskStatus.COMPLETED, 0.0)


def test_default_selectors():
    assert default_selectors(1) == [None]
    assert default_selectors(3) == [None, None, PrioritySelector(max_priority=LOWEST_PRIORITY - 1)]


def test_pool_validates_selectors():
    task_queue = TaskQueue()
    handler = RecordingHandler()

    with pytest.raises(ValueError):
        TaskWorkerPool(task_queue, handler, workers=0)
    with pytest.raises(ValueError):
        TaskWorkerPool(task_queue, handler, workers=2, selectors=[None])
    with pytest.raises(ValueError):
        TaskWorkerPool(task_queue, handler, workers=1, selectors=[PrioritySelector(max_priority=3)])


def test_pool_drains_queue():
    task_queue = TaskQueue()
    handler = RecordingHandler()
    for number in range(10):
        task_queue.put(HashBook(str(number)))

    pool = TaskWorkerPool(task_queue, handler, workers=3)
    pool.start()
    try:
        assert pool.wait_idle(timeout=10)
    finally:
        pool.stop()

    assert len(handler.calls) == 10
    assert len(pool.results) == 10
    assert not pool.running


def test_restricted_slot_never_runs_lowest_priority_work():
    task_queue = TaskQueue()
    handler = RecordingHandler()
    for number in range(5):
        task_queue.put(HashBook(f"slow-{number}", priority=LOWEST_PRIORITY))

    pool = TaskWorkerPool(task_queue, handler, workers=2)
    pool.start()
    try:
        assert pool.wait_idle(timeout=10)
    finally:
        pool.stop()

    assert {name for _, name in handler.calls} == {"StacksTaskWorker-0"}


def test_scan_runs_to_completion_with_follow_ups(services, library, library_dir):
    create_cbz(library_dir / "Series" / "issue01.cbz", pages=2)
    create_cbz(library_dir / "Series" / "issue02.cbz", pages=2)
    services.task_queue.put(ScanLibrary(library.id))

    pool = services.worker_pool()
    pool.start()
    try:
        assert pool.wait_idle(timeout=30)
    finally:
        pool.stop()

    assert all(result.status == TaskStatus.COMPLETED for result in pool.results)
    with session_scope(services.engine) as session:
        repo = Repository(session)
        books = repo.find_books_by_library(library.id)
        assert len(books) == 2
        for book in books:
            assert repo.get_media(book.id).status == MediaStatus.READY
            assert book.file_hash
            assert repo.find_selected_thumbnail(book.id) is not None
