"""Bounded concurrent rendering."""

import threading
from concurrent.futures import Future, ThreadPoolExecutor

from qrbot.logging import audit, get_logger
from qrbot.renderer import Renderer, RenderRequest, RenderResult

log = get_logger("pool")


class RenderPool:
    """Runs renders on at most *max_workers* threads.

    Ultra canvases are 16x the pixels of Standard, so the worker count is the
    memory bound as well as the CPU bound. Requests beyond it queue.
    """

    def __init__(self, max_workers: int = 4, renderer: Renderer | None = None):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self._renderer = renderer or Renderer()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="qrbot-render")
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    def _run(self, request: RenderRequest) -> RenderResult:
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
        try:
            return self._renderer.render_request(request)
        finally:
            with self._lock:
                self._in_flight -= 1

    def submit(self, request: RenderRequest) -> "Future[RenderResult]":
        return self._executor.submit(self._run, request)

    def render(self, request: RenderRequest, timeout: float | None = None) -> RenderResult:
        """Render on the pool and wait. Raises ``TimeoutError`` after *timeout* seconds."""
        return self.submit(request).result(timeout=timeout)

    @property
    def peak_concurrency(self) -> int:
        """Highest number of renders observed running at once."""
        with self._lock:
            return self._peak

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        audit("pool.shutdown", logger=log, workers=self.max_workers, peak=self._peak)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
