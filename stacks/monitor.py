"""Filesystem monitoring for Stacks.

Uses Watchdog to notice new/modified/deleted books and folders. Events are
collected into short batches; each batch becomes a single ScanLibrary task,
the scan itself works out what changed.
"""

from __future__ import annotations

import time
import queue
from collections import Counter
from pathlib import Path
from threading import Thread, Event
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileSystemEvent

from .config import StacksConfig
from .library_lifecycle import is_book_file
from .logging_config import get_logger
from .models import Library
from .task_emitter import TaskEmitter

logger = get_logger(__name__)

BATCH_WINDOW = 1.0  # Seconds to wait for more events


class MonitorEvent(NamedTuple):
    action: str
    path: Path
    dest_path: Optional[Path] = None


class LibraryEventHandler(FileSystemEventHandler):
    """Handle filesystem events and push the relevant ones to a queue."""

    def __init__(
        self,
        event_queue: queue.Queue,
        extensions: Tuple[str, ...] = ("cbz", "cbr"),
        debounce_seconds: int = 2,
    ):
        super().__init__()
        self.event_queue = event_queue
        self.extensions = extensions
        self.debounce_seconds = debounce_seconds
        self._last_modified: Dict[str, float] = {}

    def _is_book(self, path: Path) -> bool:
        return is_book_file(path, self.extensions)

    def on_created(self, event: FileSystemEvent) -> None:
        path = Path(event.src_path)
        if path.name.startswith("._"):
            return

        if event.is_directory or self._is_book(path):
            self.event_queue.put(MonitorEvent("created", path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = Path(event.src_path)
        if path.name.startswith("._"):
            return

        self.event_queue.put(MonitorEvent("deleted", path))

    def on_moved(self, event: FileSystemEvent) -> None:
        src_path = Path(event.src_path)
        dest_path = Path(event.dest_path)

        if src_path.name.startswith("._") or dest_path.name.startswith("._"):
            return

        self.event_queue.put(MonitorEvent("moved", src_path, dest_path=dest_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        path = Path(event.src_path)
        if path.name.startswith("._") or not self._is_book(path):
            return

        # Simple debounce for modified files
        now = time.time()
        key = str(path)
        last = self._last_modified.get(key, 0)
        if now - last < self.debounce_seconds:
            return

        self._last_modified[key] = now
        self.event_queue.put(MonitorEvent("modified", path))

        # Prune stale entries to prevent unbounded growth
        cutoff = now - self.debounce_seconds * 2
        self._last_modified = {
            k: v for k, v in self._last_modified.items() if v > cutoff
        }


def summarize_batch(events: Iterable[MonitorEvent]) -> Dict[str, int]:
    """Count distinct (action, path) pairs per action."""
    return dict(Counter(action for action, _ in {(e.action, e.path) for e in events}))


def drain_batch(event_queue: queue.Queue, first: MonitorEvent, window: float = BATCH_WINDOW) -> List[MonitorEvent]:
    """Collect events arriving within `window` seconds after the first one."""
    batch = [first]
    start_time = time.time()

    while (time.time() - start_time) < window:
        try:
            # Non-blocking get to drain queue
            batch.append(event_queue.get_nowait())
        except queue.Empty:
            # Queue empty, wait a bit to see if more come (debounce burst)
            time.sleep(0.1)
    return batch


def process_queue(
    event_queue: queue.Queue,
    library: Library,
    emitter: TaskEmitter,
    stop_event: Event,
) -> None:
    """Worker function turning batches of filesystem events into library scans."""
    while not stop_event.is_set():
        try:
            # Block until first event arrives
            first_event = event_queue.get(timeout=1.0)
        except queue.Empty:
            continue

        batch = drain_batch(event_queue, first_event)
        logger.info(f"[WATCH] {library.name}: {summarize_batch(batch)}")
        emitter.scan_library(library.id)


class LibraryMonitor:
    """Running watchdog observer plus the batching thread behind it."""

    def __init__(self, observer: Observer, worker: Thread, stop_event: Event):
        self.observer = observer
        self.worker = worker
        self.stop_event = stop_event

    def stop(self) -> None:
        self.stop_event.set()
        self.observer.stop()
        self.observer.join()
        self.worker.join(timeout=BATCH_WINDOW * 2)


def start_file_monitoring(
    config: StacksConfig, library: Library, emitter: TaskEmitter
) -> Optional[LibraryMonitor]:
    """Start filesystem monitoring if enabled in config."""
    if not config.monitoring.enabled:
        return None

    library_path = library.path
    if not library_path.exists():
        logger.error(f"Library path does not exist: {library_path}")
        return None

    event_queue: queue.Queue = queue.Queue()
    stop_event = Event()

    # Start the worker thread
    worker = Thread(
        target=process_queue,
        args=(event_queue, library, emitter, stop_event),
        daemon=True,
        name="StacksMonitorWorker",
    )
    worker.start()

    event_handler = LibraryEventHandler(
        event_queue,
        tuple(config.scanner.supported_formats),
        config.monitoring.debounce_seconds,
    )

    observer = Observer()
    observer.schedule(event_handler, str(library_path), recursive=True)
    observer.start()
    logger.info(f"Watching {library_path} for changes")

    return LibraryMonitor(observer, worker, stop_event)
