"""Single-thread execution context that owns published state."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_Job = Tuple[Callable[..., Any], Tuple[Any, ...], "Future[Any]"]


class OwnerLoop:
    """Run submitted callables one at a time on a dedicated thread.

    Whatever the loop's callables mutate is only ever touched from this
    thread, so state owned by the loop needs no further locking.
    """

    def __init__(self, name: str = "prune-owner") -> None:
        self._name = name
        self._queue: queue.Queue[Optional[_Job]] = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("OwnerLoop is already running.")
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Finish queued jobs, then stop the thread."""
        if self._thread is None:
            return
        self._stopping.set()
        self._queue.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None

    def is_owner_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def submit(self, fn: Callable[..., T], *args: Any) -> "Future[T]":
        """Queue ``fn(*args)`` and return a future for its result."""
        future: Future[T] = Future()
        if self._stopping.is_set() or not self.running:
            future.set_exception(RuntimeError("OwnerLoop is not running."))
            return future
        self._queue.put((fn, args, future))
        return future

    def call(self, fn: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        """Run ``fn`` on the owner thread and wait for its result."""
        if self.is_owner_thread():
            return fn(*args)
        return self.submit(fn, *args).result(timeout=timeout)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                break
            fn, args, future = job
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)


__all__ = ["OwnerLoop"]
