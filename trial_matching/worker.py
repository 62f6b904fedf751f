"""
In-process background execution for fire-and-forget work.
"""

import queue
import threading
from typing import Callable, Optional

from util.logging_util import setup_logger

logger = setup_logger(__name__)

_STOP = object()


class BackgroundWorker:
    """Runs submitted callables one at a time on a daemon thread.

    submit() returns immediately. Exceptions raised by a task are logged here
    and never reach the submitter.
    """

    def __init__(self, name: str = "background-worker"):
        self.name = name
        self._queue: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_started(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                description, func, args, kwargs = item
                try:
                    func(*args, **kwargs)
                except Exception:
                    logger.exception(f"Background task {description} failed")
            finally:
                self._queue.task_done()

    def submit(self, func: Callable, *args, description: str = "", **kwargs):
        """Queue func(*args, **kwargs) to run in the background."""
        self._ensure_started()
        self._queue.put((description or getattr(func, "__name__", "task"), func, args, kwargs))

    def join(self):
        """Block until every queued task has finished."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None):
        """Finish the queued tasks, then stop the thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout)
