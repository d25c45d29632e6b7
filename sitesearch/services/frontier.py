"""Crawl frontier: a breadth-first work queue consumed by a pool of threads.

The frontier owns the visited set, so admission of a URL is an atomic
insert-if-absent and each normalized URL is handed to a worker at most once
per run.
"""

from __future__ import annotations

import contextlib
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Iterator, List, Optional


class CancelToken:
    """Run-scoped cancellation signal shared by the orchestrator and its crawlers."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001 - один сбойный колбэк не мешает остальным
                logging.getLogger("sitesearch.frontier").exception("Cancel callback failed")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


class KeyedLock:
    """Fine-grained locking over a fixed pool of lock stripes.

    Keys are mapped onto ``stripes`` locks by hash, so memory stays constant
    no matter how many distinct keys pass through.
    """

    def __init__(self, stripes: int = 256) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._stripes: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._stripes)

    def stripes_for(self, keys: Iterable[Hashable]) -> List[int]:
        return sorted({hash(key) % len(self._stripes) for key in keys})

    @contextlib.contextmanager
    def hold(self, keys: Iterable[Hashable]) -> Iterator[None]:
        """Acquire the stripes of all ``keys`` in ascending order so concurrent holders never deadlock."""
        acquired: List[threading.Lock] = []
        try:
            for index in self.stripes_for(keys):
                lock = self._stripes[index]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


@dataclass(slots=True)
class FrontierEntry:
    url: str
    path: str
    depth: int


class CrawlFrontier:
    """Bounded BFS queue with a visited set and its own worker threads."""

    def __init__(
        self,
        name: str,
        handler: Callable[[FrontierEntry], None],
        *,
        max_workers: int,
        max_size: int,
        token: CancelToken,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.max_workers = max(1, max_workers)
        self.max_size = max_size
        self._handler = handler
        self._token = token
        self._queue: "queue.Queue[Optional[FrontierEntry]]" = queue.Queue()
        self._visited: set[str] = set()
        self._failed: set[str] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0
        self._workers: list[threading.Thread] = []
        self._shutdown = threading.Event()
        self._started = False
        self._logger = logger or logging.getLogger(f"sitesearch.frontier.{name}")

    # ------------------------------------------------------------------
    # Допуск URL
    # ------------------------------------------------------------------
    def is_full(self) -> bool:
        with self._lock:
            return len(self._visited) >= self.max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._visited)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._visited or url in self._failed

    def admit(self, url: str, path: str, depth: int) -> bool:
        """Enqueue ``url`` unless it was already seen, the frontier is full, or the run is cancelled."""
        if self._token.cancelled or self._shutdown.is_set():
            return False
        with self._lock:
            if url in self._visited or url in self._failed:
                return False
            if len(self._visited) >= self.max_size:
                return False
            self._visited.add(url)
            self._pending += 1
        self._queue.put(FrontierEntry(url=url, path=path, depth=depth))
        return True

    def release(self, url: str) -> None:
        """Free the capacity held by a failed URL; it is not re-admitted in this run."""
        with self._lock:
            self._visited.discard(url)
            self._failed.add(url)

    # ------------------------------------------------------------------
    # Пул потоков
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
        for idx in range(self.max_workers):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"{self.name}-worker-{idx + 1}",
                daemon=True,
            )
            self._workers.append(worker)
            worker.start()
        self._logger.debug("Frontier '%s' started with %s workers", self.name, self.max_workers)

    def wait(self, poll_interval: float = 0.5) -> bool:
        """Block until no entry is pending or the run is cancelled.

        Returns True when the frontier drained normally.
        """
        with self._idle:
            while self._pending > 0:
                if self._token.cancelled:
                    return False
                self._idle.wait(poll_interval)
        return not self._token.cancelled

    def shutdown(self, grace_seconds: float = 2.0) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        for _ in self._workers:
            self._queue.put(None)
        for worker in self._workers:
            worker.join(timeout=grace_seconds)
        alive = [w.name for w in self._workers if w.is_alive()]
        if alive:
            self._logger.warning("Frontier '%s' abandoned %s busy workers", self.name, len(alive))
        self._workers.clear()
        self._logger.debug("Frontier '%s' stopped", self.name)

    def stats(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "workers": len(self._workers),
                "visited": len(self._visited),
                "failed": len(self._failed),
                "pending": self._pending,
                "queued": self._queue.qsize(),
            }

    def _worker_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                entry = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            if entry is None:
                break
            try:
                if not self._token.cancelled:
                    self._handler(entry)
            except Exception as exc:  # noqa: BLE001 - сбой одной страницы не останавливает пул
                self._logger.exception("Frontier '%s' task %s failed: %s", self.name, entry.url, exc)
            finally:
                self._done()

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending <= 0:
                self._idle.notify_all()
