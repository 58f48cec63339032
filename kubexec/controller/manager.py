import asyncio
from typing import Dict, List, Optional

from kubexec.controller.queue import WorkQueue
from kubexec.controller.watcher import ExecutorWatcher
from kubexec.logging import get_logger
from kubexec.models import ReconcileOutcome, ResourceKey
from kubexec.reconcile.reconciler import Reconciler

log = get_logger("controller")


class ExecutorController:
    """
    Drives the reconciler from the work queue with a fixed pool of workers.

    Each worker takes one key at a time, so distinct executors are reconciled
    concurrently up to ``workers`` while the queue keeps passes for the same
    executor strictly serial. The outcome of each pass decides whether the
    key is forgotten or queued again with backoff.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        queue: WorkQueue,
        workers: int = 4,
        watcher: Optional[ExecutorWatcher] = None,
    ):
        self._reconciler = reconciler
        self._queue = queue
        self._workers = workers
        self._watcher = watcher
        self._worker_tasks: List[asyncio.Task] = []
        self._inflight: Dict[ResourceKey, asyncio.Task] = {}

    @property
    def queue(self) -> WorkQueue:
        return self._queue

    def set_watcher(self, watcher: ExecutorWatcher) -> None:
        self._watcher = watcher

    def enqueue(self, key: ResourceKey) -> None:
        self._queue.add(key)

    def cancel(self, key: ResourceKey) -> None:
        """Cancel the pass currently running for ``key``, if any."""
        task = self._inflight.get(key)
        if task is not None and not task.done():
            log.info(f"Cancelling in-flight pass for {key}")
            task.cancel()

    async def start(self) -> None:
        log.info(f"Starting executor controller with {self._workers} workers")
        for index in range(self._workers):
            self._worker_tasks.append(
                asyncio.create_task(self._worker(index), name=f"reconcile_worker_{index}")
            )
        if self._watcher is not None:
            await self._watcher.start()

    async def stop(self) -> None:
        log.info("Stopping executor controller...")
        if self._watcher is not None:
            await self._watcher.stop()
        self._queue.shutdown()
        for task in self._worker_tasks:
            task.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks = []
        log.info("Executor controller stopped")

    async def _worker(self, index: int) -> None:
        worker_log = log.bind(worker=index)
        while True:
            key = await self._queue.get()
            if key is None:
                worker_log.debug("Work queue shut down, worker exiting")
                return
            try:
                await self.process(key)
            finally:
                self._queue.done(key)

    async def process(self, key: ResourceKey) -> None:
        """Run one pass for ``key`` and requeue it according to the outcome."""
        task = asyncio.create_task(self._reconciler.reconcile(key), name=f"reconcile:{key}")
        self._inflight[key] = task
        try:
            # wait() rather than await so that cancelling the pass does not cancel the worker
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._inflight.pop(key, None)

        if task.cancelled():
            log.info(f"Pass for {key} was cancelled")
            self._queue.forget(key)
            return

        error = task.exception()
        if error is not None:
            delay = self._queue.add_rate_limited(key)
            log.opt(exception=error).error(
                f"Reconciler raised for {key}, retrying in {delay:.1f}s"
            )
            return

        result = task.result()
        if result.outcome == ReconcileOutcome.RETRY:
            if result.retry_after is not None:
                self._queue.add_after(key, result.retry_after)
                delay = result.retry_after
            else:
                delay = self._queue.add_rate_limited(key)
            log.warning(f"Pass for {key} requested retry in {delay:.1f}s: {result.reason}")
        else:
            self._queue.forget(key)
