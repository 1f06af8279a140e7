"""Concurrent worker pool for pipeline tasks."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from chainstream.core.logging import format_failure, get_logger

log = get_logger("task_queue")

T = TypeVar("T")


class TaskQueue(Generic[T]):
    """Unordered queue drained by ``workers`` concurrent consumers.

    A failing task is logged and dropped; it never stops its worker.
    """

    def __init__(self, handler: Callable[[T], Awaitable[None]], workers: int = 8):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.handler = handler
        self.workers = workers
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._worker(i), name=f"pipeline-worker-{i}") for i in range(self.workers)]
        log.info(f"Started {self.workers} pipeline workers")

    def put(self, item: T) -> None:
        self._queue.put_nowait(item)

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued item, including ones queued meanwhile, is done."""
        if timeout is None:
            await self._queue.join()
        else:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Pipeline workers stopped")

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self.handler(item)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self.failed += 1
                log.error(f"Worker {index} task {item!r} crashed: {format_failure(exc)}")
            finally:
                self._queue.task_done()
