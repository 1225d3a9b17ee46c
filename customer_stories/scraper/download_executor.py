from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, List, Optional, Sequence, TypeVar

from . import config
from .logging_utils import _scraper_event

T = TypeVar("T")


class DownloadExecutor:
    """
    Thin concurrency wrapper around asset downloads.

    IMPORTANT:
    - Default max_workers is 1, so downloads run inline and in order.
    - Only HTTP fetches are parallelised, never page rendering.
    - ``run_all`` returns results in submission order; callers write them back
      onto their record by index on the calling thread.
    """

    def __init__(self, max_workers: Optional[int] = None) -> None:
        requested = config.MAX_PARALLEL_DOWNLOADS if max_workers is None else max_workers
        self._max_workers = max(1, requested)
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="asset")
            if self._max_workers > 1
            else None
        )
        self._lock = Lock()
        self._in_flight: int = 0
        self._peak_in_flight: int = 0

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def _track(self, fn: Callable[[], T]) -> Callable[[], T]:
        def _wrapped() -> T:
            with self._lock:
                self._in_flight += 1
                self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            try:
                return fn()
            finally:
                with self._lock:
                    self._in_flight -= 1

        return _wrapped

    def run_all(self, jobs: Sequence[Callable[[], T]]) -> List[T]:
        """Run ``jobs`` and return their results in submission order."""

        if self._executor is None:
            return [self._track(job)() for job in jobs]

        futures: List[Future[T]] = [self._executor.submit(self._track(job)) for job in jobs]
        return [future.result() for future in futures]

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak_in_flight

    def log_summary(self) -> None:
        _scraper_event(
            "state",
            phase="download_executor",
            kind="summary",
            peak_in_flight=self.peak_in_flight,
            max_parallel=self._max_workers,
        )

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "DownloadExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.shutdown()
