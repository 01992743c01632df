"""
Write Serializer

Two messages handled back-to-back both trigger a save. Their writes
must not interleave on the one snapshot file, and they must land in
the order they were issued.

DESIGN DECISION: A FIFO asyncio.Queue drained by a single worker task.
- submit() never blocks; it returns a future for that job
- jobs run one at a time, in submission order
- a failing job is logged and resolves its future with False;
  the jobs behind it still run
- join() waits until everything submitted so far has finished

The worker is created lazily on the running loop, so the serializer
can be constructed before the event loop exists.
"""

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Optional

import structlog


logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


class WriteSerializer:
    """Runs submitted async jobs strictly one after another."""

    def __init__(self, name: str = "ledger-writes"):
        self._name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self.submitted = 0
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Jobs submitted but not finished yet."""
        return self.submitted - self.completed - self.failed

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, job: Job, label: str = "write") -> "asyncio.Future[bool]":
        """
        Enqueue ``job``.

        Returns:
            Future resolving to True when the job finished, False if it raised

        Raises:
            RuntimeError: serializer was closed, or no event loop is running
        """
        if self._closed:
            raise RuntimeError(f"{self._name}: serializer is closed")

        loop = asyncio.get_running_loop()
        self._ensure_worker(loop)

        future: asyncio.Future[bool] = loop.create_future()
        self._queue.put_nowait((job, future, label))
        self.submitted += 1
        return future

    async def join(self) -> None:
        """Wait until every job submitted so far has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain the queue, then stop the worker. Further submits fail."""
        self._closed = True
        await self.join()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    def _ensure_worker(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(), name=self._name)

    async def _run(self) -> None:
        while True:
            job, future, label = await self._queue.get()
            try:
                await job()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception:
                self.failed += 1
                logger.exception("write_job_failed", queue=self._name, job=label)
                if not future.done():
                    future.set_result(False)
            else:
                self.completed += 1
                if not future.done():
                    future.set_result(True)
            finally:
                self._queue.task_done()
