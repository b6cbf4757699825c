"""
Worker runtime - one asyncio loop per worker process
====================================================
Celery tasks are synchronous. They hand their coroutine to a loop running
in a daemon thread and block until it finishes. Because the loop outlives
individual jobs, detached delegation requests keep running after the job
that started them has been acknowledged.
"""
import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class WorkerRuntime:
    """Background event loop shared by all jobs in one worker process"""

    def __init__(self, name: str = 'alert-worker-loop'):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    def start(self) -> None:
        """Start the loop thread (no-op if already running)"""
        with self._lock:
            if self._loop is not None:
                return

            loop = asyncio.new_event_loop()
            started = threading.Event()

            def _run():
                asyncio.set_event_loop(loop)
                loop.call_soon(started.set)
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(target=_run, name=self.name, daemon=True)
            self._thread.start()
            started.wait()

        logger.info(f"Worker runtime started ({self.name})")

    def run(self, coro: Awaitable[Any]) -> Any:
        """
        Run coro on the background loop and block until it completes.

        Exceptions raised by coro propagate to the caller.
        """
        if self._loop is None:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(
        self,
        cleanup: Optional[Callable[[], Awaitable[Any]]] = None,
        timeout: float = 10.0
    ) -> None:
        """
        Run cleanup on the loop, then stop it.

        Args:
            cleanup: Coroutine function awaited before the loop stops
            timeout: Seconds to wait for cleanup and for the thread to exit
        """
        with self._lock:
            loop, thread = self._loop, self._thread
            if loop is None:
                return
            self._loop = None
            self._thread = None

        if cleanup is not None:
            future = asyncio.run_coroutine_threadsafe(cleanup(), loop)
            try:
                future.result(timeout)
            except Exception as e:
                logger.error(f"Error during worker runtime cleanup: {e}")

        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
        if not thread.is_alive():
            loop.close()

        logger.info(f"Worker runtime stopped ({self.name})")
