"""Progress tracking shared by export worker threads."""

import threading
from typing import Callable, Optional

ProgressCallback = Callable[[int, int], None]


class ExportProgress:
    """Thread-safe progress counter for a multi-threaded export.

    Workers call ``update()`` and ``end_worker()`` from any thread. The
    coordinating thread calls ``wait_for_completion()``, which also forwards
    progress to the optional callback, so a display is only ever touched by
    the coordinator.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        """Initialize the tracker.

        Args:
            callback: Called with ``(completed, total)`` from the coordinating thread
        """
        self.callback = callback
        self.total = 0
        self.completed = 0
        self._reported = -1
        self._workers = 0
        self._cond = threading.Condition()

    def begin(self, total: int) -> None:
        with self._cond:
            self.total = total
            self.completed = 0
        self._report()

    def update(self, completed: int = 1) -> None:
        with self._cond:
            self.completed += completed

    def start_workers(self, count: int) -> None:
        with self._cond:
            self._workers += count

    def end_worker(self) -> None:
        with self._cond:
            self._workers -= 1
            self._cond.notify_all()

    @property
    def active_workers(self) -> int:
        with self._cond:
            return self._workers

    def wait_for_completion(self, poll_interval: float = 0.25) -> None:
        """Block until every started worker has called ``end_worker()``."""
        while True:
            with self._cond:
                if self._workers <= 0:
                    break
                self._cond.wait(poll_interval)
            self._report()
        self._report()

    def _report(self) -> None:
        with self._cond:
            completed, total = self.completed, self.total
        if self.callback is not None and completed != self._reported:
            self._reported = completed
            self.callback(completed, total)


class WorkItemProgress:
    """Progress of one work item, forwarded to the shared tracker.

    ``complete()`` accounts for records that were never reached, e.g. when
    the repository could not be opened, so the shared total always adds up.
    """

    def __init__(self, tracker: ExportProgress, total: int) -> None:
        self.tracker = tracker
        self.total = total
        self.done = 0

    def update(self, completed: int = 1) -> None:
        self.done += completed
        self.tracker.update(completed)

    def complete(self) -> None:
        remaining = self.total - self.done
        if remaining > 0:
            self.update(remaining)
