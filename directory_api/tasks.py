"""In-process background queue for work that must not hold up the HTTP response.

Jobs are plain coroutine functions. A failing job is logged with its name and
traceback; it never propagates to whoever submitted it.
"""

import asyncio
from collections.abc import Awaitable, Callable

from .config import settings
from .logger import logger
from .monitoring import BACKGROUND_JOB_FAILURES

Job = Callable[[], Awaitable[None]]


class TaskQueue:
    """asyncio.Queue drained by a fixed pool of worker tasks.

    Workers start lazily on the first submit, so the queue also works when the
    application lifespan has not run (e.g. under an ASGI test transport).
    """

    def __init__(self, workers: int = settings.TASK_WORKERS):
        self.worker_count = max(1, workers)
        self._queue: asyncio.Queue[tuple[str, Job]] | None = None
        self._workers: list[asyncio.Task] = []
        self.failed = 0
        self.completed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Spawn worker tasks on the running event loop."""
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"task-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"[tasks] Started {self.worker_count} background worker(s)")

    def submit(self, name: str, job: Job) -> None:
        """Enqueue a job without waiting for it."""
        if not self._workers:
            self.start()
        self._queue.put_nowait((name, job))
        logger.debug(f"[tasks] Queued job: {name}")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT) -> None:
        """Drain pending jobs (bounded by timeout) and cancel the workers."""
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"[tasks] Shutdown timeout ({timeout}s) reached with "
                f"{self._queue.qsize()} job(s) still queued - dropping them"
            )
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.info("[tasks] Background workers stopped")

    async def _worker(self, index: int) -> None:
        while True:
            name, job = await self._queue.get()
            try:
                await job()
                self.completed += 1
                logger.debug(f"[tasks] worker-{index} finished job: {name}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                BACKGROUND_JOB_FAILURES.inc()
                logger.error(f"[tasks] Job {name} failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()
