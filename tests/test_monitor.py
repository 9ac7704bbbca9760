"""Tests for filesystem monitoring."""

import queue
import threading
import time
from pathlib import Path
from unittest.mock import Mock

from stacks.models import Library
from stacks.monitor import LibraryEventHandler, MonitorEvent, drain_batch, process_queue, summarize_batch


def _event(src_path, is_directory=False, dest_path=None):
    event = Mock()
    event.src_path = src_path
    event.dest_path = dest_path
    event.is_directory = is_directory
    return event


def test_summarize_batch_deduplicates():
    """Repeated events on the same path count once per action."""
    events = [
        MonitorEvent("created", Path("/comics/issue1.cbz")),
        MonitorEvent("created", Path("/comics/issue1.cbz")),
        MonitorEvent("created", Path("/comics/issue2.cbz")),
        MonitorEvent("deleted", Path("/comics/issue1.cbz")),
    ]

    assert summarize_batch(events) == {"created": 2, "deleted": 1}


def test_handler_ignores_macos_temp_files():
    """Test that handler ignores macOS temporary files (._*)."""
    event_queue = queue.Queue()
    handler = LibraryEventHandler(event_queue, debounce_seconds=0)

    handler.on_created(_event("/comics/._issue1.cbz"))
    handler.on_deleted(_event("/comics/._issue1.cbz"))

    assert event_queue.empty()


def test_handler_queues_book_creation():
    event_queue = queue.Queue()
    handler = LibraryEventHandler(event_queue, debounce_seconds=0)

    handler.on_created(_event("/comics/issue1.cbz"))
    handler.on_created(_event("/comics/notes.txt"))

    assert event_queue.get_nowait() == MonitorEvent("created", Path("/comics/issue1.cbz"))
    assert event_queue.empty()


def test_handler_queues_folder_creation():
    event_queue = queue.Queue()
    handler = LibraryEventHandler(event_queue, debounce_seconds=0)

    handler.on_created(_event("/comics/Marvel", is_directory=True))

    assert event_queue.get_nowait().path == Path("/comics/Marvel")


def test_handler_queues_moves():
    event_queue = queue.Queue()
    handler = LibraryEventHandler(event_queue, debounce_seconds=0)

    handler.on_moved(_event("/comics/a.cbz", dest_path="/comics/b.cbz"))

    assert event_queue.get_nowait() == MonitorEvent("moved", Path("/comics/a.cbz"), Path("/comics/b.cbz"))


def test_handler_debounces_modifications():
    """A burst of writes to the same book is reported once."""
    event_queue = queue.Queue()
    handler = LibraryEventHandler(event_queue, debounce_seconds=60)

    for _ in range(3):
        handler.on_modified(_event("/comics/issue1.cbz"))
    handler.on_modified(_event("/comics", is_directory=True))

    assert event_queue.qsize() == 1


def test_drain_batch_collects_burst():
    event_queue = queue.Queue()
    event_queue.put(MonitorEvent("created", Path("/comics/issue2.cbz")))

    batch = drain_batch(event_queue, MonitorEvent("created", Path("/comics/issue1.cbz")), window=0.2)

    assert [e.path.name for e in batch] == ["issue1.cbz", "issue2.cbz"]


def test_process_queue_requests_one_scan_per_batch():
    event_queue = queue.Queue()
    emitter = Mock()
    stop_event = threading.Event()
    library = Library(id="lib-1", name="Comics", root="/comics")
    for name in ("issue1.cbz", "issue2.cbz", "issue3.cbz"):
        event_queue.put(MonitorEvent("created", Path("/comics") / name))

    worker = threading.Thread(target=process_queue, args=(event_queue, library, emitter, stop_event))
    worker.start()
    deadline = time.time() + 10
    while not emitter.scan_library.called and time.time() < deadline:
        time.sleep(0.05)
    stop_event.set()
    worker.join(timeout=5)

    emitter.scan_library.assert_called_once_with("lib-1")
