import asyncio
import time
from typing import List, Optional

from kubexec.cluster.reader import ClusterStateReader
from kubexec.cluster.store import ExecutorStore
from kubexec.errors import ClusterReadError, ExecutionError, ResourceNotFoundError, StatusWriteError
from kubexec.execution.base import RemoteExecutor
from kubexec.logging import get_logger
from kubexec.metrics import RECONCILE_COUNTER, RECONCILE_DURATION
from kubexec.models import (
    ContainerIdentity,
    ExecutionResult,
    ExecutionStatus,
    Executor,
    ReconcileResult,
    ResourceKey,
)
from kubexec.reconcile.aggregator import aggregate
from kubexec.reconcile.matcher import match_containers

log = get_logger("reconcile")

DEADLINE_EXCEEDED = "pass deadline exceeded before execution started"


class Reconciler:
    """
    Brings one Executor's observed output in line with the live cluster.

    A pass fetches the declaration, lists the namespace's running containers,
    runs the command in every container whose name contains the declared
    pattern and overwrites ``status.observedOutput`` with the aggregate
    report. The reconciler never retries by itself: it tells the dispatcher
    whether the pass is done, should be retried, or had nothing to do.

    No state is kept between passes, so one instance can serve concurrent
    passes for different executors.
    """

    def __init__(
        self,
        store: ExecutorStore,
        reader: ClusterStateReader,
        executor: RemoteExecutor,
        exec_timeout: float = 30.0,
        pass_deadline: Optional[float] = None,
        max_parallel: int = 1,
        api_timeout: float = 15.0,
        retry_after: Optional[float] = None,
    ):
        """
        Args:
            store: Source of declarations and sink for status.
            reader: Lists live containers.
            executor: Runs the command in one container.
            exec_timeout: Upper bound (seconds) for a single execution.
            pass_deadline: Execution budget (seconds) for the whole pass;
                defaults to ``exec_timeout`` times the number of matches.
            max_parallel: Executions run concurrently (1 runs them in match order).
            api_timeout: Timeout (seconds) for fetching, listing and status writes.
            retry_after: Delay requested on transient failure; None leaves it
                to the dispatcher's backoff.
        """
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self._store = store
        self._reader = reader
        self._executor = executor
        self._exec_timeout = exec_timeout
        self._pass_deadline = pass_deadline
        self._max_parallel = max_parallel
        self._api_timeout = api_timeout
        self._retry_after = retry_after

    async def reconcile(self, key: ResourceKey) -> ReconcileResult:
        """Run one reconciliation pass for ``key``."""
        started = time.monotonic()
        result = await self._reconcile(key)
        RECONCILE_COUNTER.labels(outcome=result.outcome.value).inc()
        RECONCILE_DURATION.observe(time.monotonic() - started)
        return result

    async def _reconcile(self, key: ResourceKey) -> ReconcileResult:
        pass_log = log.bind(executor=str(key))

        try:
            executor = await asyncio.wait_for(self._store.get(key), timeout=self._api_timeout)
        except ResourceNotFoundError:
            # Deleted executors are a terminal state, not a fault
            pass_log.debug("Executor no longer exists, nothing to do")
            return ReconcileResult.noop(reason="not found")
        except Exception as e:
            pass_log.error(f"Unable to fetch executor: {e!r}")
            return ReconcileResult.retry(self._retry_after, reason=f"fetch failed: {e!r}")

        try:
            report = await self._run_pass(executor, pass_log)
            await self._write_status(executor, report, pass_log)
        except Exception as e:
            pass_log.exception(f"Unexpected error during reconciliation: {e!r}")
            return ReconcileResult.retry(self._retry_after, reason=repr(e))

        return ReconcileResult.done()

    async def _run_pass(self, executor: Executor, pass_log) -> str:
        containers = await self._discover(executor.namespace, pass_log)
        pattern = executor.spec.container_name_pattern
        matched = match_containers(containers, pattern)
        pass_log.info(
            f"Matched {len(matched)} of {len(containers)} containers with pattern {pattern!r}"
        )

        results = await self._execute_all(matched, executor.spec.command)
        failed = sum(1 for r in results if not r.succeeded)
        if failed:
            pass_log.warning(f"Command failed in {failed} of {len(results)} containers")
        return aggregate(results)

    async def _discover(self, namespace: str, pass_log) -> List[ContainerIdentity]:
        try:
            return await asyncio.wait_for(
                self._reader.list_containers(namespace), timeout=self._api_timeout
            )
        except (ClusterReadError, asyncio.TimeoutError) as e:
            pass_log.warning(f"Cluster state unavailable, continuing with no containers: {e!r}")
            return []

    async def _execute_all(
        self, matched: List[ContainerIdentity], command: str
    ) -> List[ExecutionResult]:
        if not matched:
            return []

        loop = asyncio.get_running_loop()
        budget = self._pass_deadline or self._exec_timeout * len(matched)
        deadline = loop.time() + budget

        async def run_one(container: ContainerIdentity) -> ExecutionResult:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return ExecutionResult(
                    container=container, status=ExecutionStatus.ERROR, error=DEADLINE_EXCEEDED
                )
            try:
                return await self._executor.run(
                    container, command, min(self._exec_timeout, remaining)
                )
            except ExecutionError as e:
                return ExecutionResult(
                    container=container,
                    status=ExecutionStatus.FAILED if e.ran else ExecutionStatus.ERROR,
                    error=str(e),
                )
            except Exception as e:
                log.opt(exception=e).error(f"Executor raised for {container}: {e!r}")
                return ExecutionResult(
                    container=container,
                    status=ExecutionStatus.ERROR,
                    error=f"executor error: {e!r}",
                )

        if self._max_parallel == 1:
            return [await run_one(container) for container in matched]

        semaphore = asyncio.Semaphore(self._max_parallel)

        async def run_limited(container: ContainerIdentity) -> ExecutionResult:
            async with semaphore:
                return await run_one(container)

        tasks = [asyncio.create_task(run_limited(c)) for c in matched]
        try:
            # gather returns results in argument order, whatever the completion order
            return list(await asyncio.gather(*tasks))
        finally:
            # No execution may outlive the pass, whichever way it ends
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _write_status(self, executor: Executor, report: str, pass_log) -> None:
        try:
            await asyncio.wait_for(
                self._store.update_status(executor, report), timeout=self._api_timeout
            )
        except (StatusWriteError, asyncio.TimeoutError) as e:
            pass_log.error(f"Unable to update executor status: {e!r}")
            return
        pass_log.info("Updated observed output")
