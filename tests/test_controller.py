import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FakeExecutor, make_executor

from kubexec.controller import ExecutorController, WorkQueue
from kubexec.models import ReconcileResult, ResourceKey
from kubexec.reconcile import Reconciler

KEY = ResourceKey(namespace="default", name="batch")


def controller_with(reconcile, **kwargs):
    reconciler = MagicMock()
    reconciler.reconcile = reconcile
    return ExecutorController(reconciler, WorkQueue(base_delay=1.0, max_delay=10.0), **kwargs)


@pytest.mark.asyncio
async def test_done_forgets_failure_history():
    controller = controller_with(AsyncMock(return_value=ReconcileResult.done()))
    controller.queue.add_rate_limited(KEY)

    await controller.process(KEY)

    assert controller.queue.num_requeues(KEY) == 0
    controller.queue.shutdown()


@pytest.mark.asyncio
async def test_retry_with_requested_delay_uses_it():
    controller = controller_with(AsyncMock(return_value=ReconcileResult.retry(after=12.0, reason="boom")))

    with patch.object(controller.queue, "add_after") as add_after:
        await controller.process(KEY)

    add_after.assert_called_once_with(KEY, 12.0)


@pytest.mark.asyncio
async def test_retry_without_delay_backs_off():
    controller = controller_with(AsyncMock(return_value=ReconcileResult.retry(reason="boom")))

    await controller.process(KEY)
    await controller.process(KEY)

    assert controller.queue.num_requeues(KEY) == 2
    controller.queue.shutdown()


@pytest.mark.asyncio
async def test_noop_is_not_requeued():
    controller = controller_with(AsyncMock(return_value=ReconcileResult.noop("gone")))

    with patch.object(controller.queue, "add_after") as add_after:
        await controller.process(KEY)

    add_after.assert_not_called()


@pytest.mark.asyncio
async def test_reconciler_exception_is_rate_limited():
    controller = controller_with(AsyncMock(side_effect=RuntimeError("bug")))

    await controller.process(KEY)

    assert controller.queue.num_requeues(KEY) == 1
    controller.queue.shutdown()


@pytest.mark.asyncio
async def test_cancel_stops_in_flight_pass_without_requeue():
    started = asyncio.Event()

    async def hang(_key):
        started.set()
        await asyncio.sleep(3600)

    controller = controller_with(hang)
    processing = asyncio.create_task(controller.process(KEY))
    await asyncio.wait_for(started.wait(), timeout=1.0)

    controller.cancel(KEY)
    await asyncio.wait_for(processing, timeout=1.0)

    assert controller.queue.num_requeues(KEY) == 0
    assert len(controller.queue) == 0


@pytest.mark.asyncio
async def test_cancel_of_idle_key_is_harmless():
    controller = controller_with(AsyncMock(return_value=ReconcileResult.done()))

    controller.cancel(KEY)


@pytest.mark.asyncio
async def test_workers_reconcile_enqueued_executors(store, reader):
    key = store.put(make_executor())
    other = store.put(make_executor(pattern="db", name="db-check"))
    reconciler = Reconciler(store=store, reader=reader, executor=FakeExecutor(), exec_timeout=1.0)
    controller = ExecutorController(reconciler, WorkQueue(), workers=2)

    await controller.start()
    controller.enqueue(key)
    controller.enqueue(other)
    for _ in range(100):
        if len(store.status_writes) == 2:
            break
        await asyncio.sleep(0.01)
    await controller.stop()

    assert sorted(str(k) for k, _ in store.status_writes) == ["default/batch", "default/db-check"]
    assert controller.queue.shutting_down


@pytest.mark.asyncio
async def test_start_and_stop_drive_the_watcher():
    watcher = MagicMock()
    watcher.start = AsyncMock()
    watcher.stop = AsyncMock()
    controller = controller_with(AsyncMock(return_value=ReconcileResult.done()), workers=1, watcher=watcher)

    await controller.start()
    await controller.stop()

    watcher.start.assert_awaited_once()
    watcher.stop.assert_awaited_once()
