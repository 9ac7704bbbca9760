"""In-process priority transport for background tasks.

Ordering: lowest priority value first, FIFO among equal priorities. A
consumer may pass a PrioritySelector to only receive tasks in a band.
A task whose unique_id is already waiting is dropped on put; once a task
has been handed out, an identical one can be queued again.
"""

from __future__ import annotations

import dataclasses
import heapq
import itertools
import queue
import threading
import time
from typing import List, Optional, Tuple

from .logging_config import get_logger
from .tasks import Task

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True)
class PrioritySelector:
    """Inclusive priority band; None means unbounded on that side."""

    min_priority: Optional[int] = None
    max_priority: Optional[int] = None

    def accepts(self, task: Task) -> bool:
        if self.min_priority is not None and task.priority < self.min_priority:
            return False
        if self.max_priority is not None and task.priority > self.max_priority:
            return False
        return True


class TaskQueue:
    def __init__(self) -> None:
        self._heap: List[Tuple[int, int, Task]] = []
        self._pending_ids: set[str] = set()
        self._sequence = itertools.count()
        self._unfinished = 0
        self._cond = threading.Condition()

    def put(self, task: Task) -> bool:
        """Queue a task. Returns False when an identical task is already waiting."""
        with self._cond:
            if task.unique_id in self._pending_ids:
                logger.debug(f"Task already queued, dropping duplicate: {task}")
                return False
            heapq.heappush(self._heap, (task.priority, next(self._sequence), task))
            self._pending_ids.add(task.unique_id)
            self._unfinished += 1
            self._cond.notify_all()
        return True

    def get(self, selector: Optional[PrioritySelector] = None, timeout: Optional[float] = None) -> Task:
        """Remove and return the next task the selector accepts.

        Blocks until one is available; raises queue.Empty after `timeout` seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                task = self._pop(selector)
                if task is not None:
                    return task
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise queue.Empty
                self._cond.wait(remaining)

    def _pop(self, selector: Optional[PrioritySelector]) -> Optional[Task]:
        if not self._heap:
            return None
        if selector is None:
            entry = heapq.heappop(self._heap)
        else:
            matching = [e for e in self._heap if selector.accepts(e[2])]
            if not matching:
                return None
            entry = min(matching)
            self._heap.remove(entry)
            heapq.heapify(self._heap)
        task = entry[2]
        self._pending_ids.discard(task.unique_id)
        return task

    def task_done(self) -> None:
        """Mark a task returned by get() as processed."""
        with self._cond:
            if self._unfinished <= 0:
                raise ValueError("task_done() called too many times")
            self._unfinished -= 1
            if self._unfinished == 0:
                self._cond.notify_all()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued task has been processed. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._unfinished:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def qsize(self) -> int:
        with self._cond:
            return len(self._heap)

    def empty(self) -> bool:
        return self.qsize() == 0

    def pending(self) -> List[Task]:
        """Waiting tasks in the order they would be handed out."""
        with self._cond:
            return [entry[2] for entry in sorted(self._heap)]

    def clear(self) -> int:
        """Drop every waiting task. Returns how many were dropped."""
        with self._cond:
            dropped = len(self._heap)
            self._heap.clear()
            self._pending_ids.clear()
            self._unfinished -= dropped
            self._cond.notify_all()
        return dropped
