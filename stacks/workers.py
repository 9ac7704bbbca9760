"""Fixed pool of task worker threads.

Each slot loops get -> handle_task -> task_done. With more than one slot,
the last one only takes priority values below LOWEST_PRIORITY so best-effort work
(conversions, extension repair) always leaves a slot for everything else.
Slot 0 accepts every priority, so the queue always drains.
"""

from __future__ import annotations

import queue
import threading
from collections import deque
from typing import Deque, List, Optional, Sequence

from .logging_config import get_logger
from .task_handler import TaskHandler, TaskResult
from .task_queue import PrioritySelector, TaskQueue
from .tasks import LOWEST_PRIORITY

logger = get_logger(__name__)

POLL_INTERVAL = 0.5  # seconds between stop checks while idle
RESULTS_KEPT = 1000


def default_selectors(workers: int) -> List[Optional[PrioritySelector]]:
    selectors: List[Optional[PrioritySelector]] = [None] * workers
    if workers > 1:
        selectors[-1] = PrioritySelector(max_priority=LOWEST_PRIORITY - 1)
    return selectors


class TaskWorkerPool:
    def __init__(
        self,
        task_queue: TaskQueue,
        handler: TaskHandler,
        workers: int = 2,
        selectors: Optional[Sequence[Optional[PrioritySelector]]] = None,
    ):
        if workers < 1:
            raise ValueError("A worker pool needs at least one worker")
        self.queue = task_queue
        self.handler = handler
        self.workers = workers
        self.selectors = list(selectors) if selectors is not None else default_selectors(workers)
        if len(self.selectors) != workers:
            raise ValueError(f"Expected {workers} selectors, got {len(self.selectors)}")
        if self.selectors[0] is not None:
            raise ValueError("The first worker must accept every priority")

        self.results: Deque[TaskResult] = deque(maxlen=RESULTS_KEPT)
        self._results_lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(
                target=self._run,
                args=(selector,),
                daemon=True,
                name=f"StacksTaskWorker-{index}",
            )
            for index, selector in enumerate(self.selectors)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Started {self.workers} task workers")

    def _run(self, selector: Optional[PrioritySelector]) -> None:
        while not self._stop.is_set():
            try:
                task = self.queue.get(selector, timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                result = self.handler.handle_task(task)
                with self._results_lock:
                    self.results.append(result)
            finally:
                self.queue.task_done()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued task, follow-ups included, is processed."""
        return self.queue.join(timeout)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop after the tasks currently running; waiting tasks stay queued."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Task workers stopped")
