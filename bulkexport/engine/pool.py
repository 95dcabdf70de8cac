# bulkexport/engine/pool.py
from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set, TypeVar
import logging
import threading

from bulkexport.core.errors import Cancelled
from .context import DEFAULT_MAX_CONCURRENCY

T = TypeVar("T")
logger = logging.getLogger(__name__)

# hoe vaak de admission-wait naar het cancel-signaal kijkt
_ADMISSION_POLL_SECONDS = 0.05


class BoundedWorkerPool:
    """
    Runs at most `max_concurrency` units of work at the same time.

    `submit()` blocks the caller while all slots are taken and raises
    `Cancelled` if cancellation arrives during that wait. Work that was
    admitted but has not started yet is refused: `on_refused(*args)` is
    called and the unit fails with `Cancelled`. Work already running
    finishes. `drain()` waits for every admitted unit, so nothing is dropped
    silently.

    Only unfinished futures are tracked; a finished unit (and whatever its
    arguments reference) is released as soon as the caller lets go of it.
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        *,
        cancel_event: Optional[threading.Event] = None,
        on_refused: Optional[Callable[..., None]] = None,
        name: str = "bulkexport-upload",
    ):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.max_concurrency = max_concurrency
        self._executor = ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix=name)
        self._slots = threading.BoundedSemaphore(max_concurrency)
        self._external_cancel = cancel_event
        self._on_refused = on_refused
        self._cancelled = threading.Event()
        self._live: Set[Future] = set()
        self._lock = threading.Lock()
        self._active = 0
        self.peak_concurrency = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set() or (
            self._external_cancel is not None and self._external_cancel.is_set()
        )

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def pending(self) -> int:
        """Admitted units whose future has not finished yet."""
        with self._lock:
            return len(self._live)

    def submit(self, fn: Callable[..., T], *args: Any) -> "Future[T]":
        while not self._slots.acquire(timeout=_ADMISSION_POLL_SECONDS):
            if self.cancelled:
                raise Cancelled("cancelled while waiting for a free upload slot")
        if self.cancelled:
            self._slots.release()
            raise Cancelled("cancelled before dispatch")

        try:
            future = self._executor.submit(self._run, fn, *args)
        except RuntimeError:
            self._slots.release()
            raise
        with self._lock:
            self._live.add(future)
        # draait direct als de future al klaar is
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._live.discard(future)

    def _run(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            self._active += 1
            self.peak_concurrency = max(self.peak_concurrency, self._active)
        try:
            if self.cancelled:
                if self._on_refused is not None:
                    self._on_refused(*args)
                raise Cancelled("cancelled before upload started")
            return fn(*args)
        finally:
            with self._lock:
                self._active -= 1
            self._slots.release()

    def cancel(self) -> None:
        self._cancelled.set()

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every admitted unit of work."""
        with self._lock:
            futures = list(self._live)
        done, not_done = wait(futures, timeout=timeout)
        # wait() kan terugkomen voordat _forget gedraaid heeft
        with self._lock:
            self._live.difference_update(done)
        if not_done:
            logger.warning("pool drain timed out with %d unit(s) still running", len(not_done))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "BoundedWorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.cancel()
        self.shutdown()
