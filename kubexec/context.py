from dataclasses import dataclass, field
from typing import Optional

from kubernetes_asyncio import client

from kubexec.cluster.reader import KubernetesClusterReader
from kubexec.cluster.store import KubernetesExecutorStore
from kubexec.config import Settings
from kubexec.controller.manager import ExecutorController
from kubexec.controller.queue import WorkQueue
from kubexec.controller.watcher import ExecutorWatcher
from kubexec.execution import RemoteExecutor, create_executor
from kubexec.logging import get_logger
from kubexec.reconcile.reconciler import Reconciler

log = get_logger("context")


@dataclass
class ControllerContext:
    """
    Holds the resources shared by the controller's components.

    Use as an async context manager; the Kubernetes API client is closed on
    every exit path. Kubernetes configuration must already be loaded.
    """

    settings: Settings
    k8s_api_client: Optional[client.ApiClient] = None
    store: Optional[KubernetesExecutorStore] = None
    reader: Optional[KubernetesClusterReader] = None
    executor: Optional[RemoteExecutor] = None
    _closed: bool = field(default=False, repr=False)

    async def __aenter__(self) -> "ControllerContext":
        self.k8s_api_client = client.ApiClient()
        self.store = KubernetesExecutorStore(
            self.k8s_api_client,
            group=self.settings.crd_group,
            version=self.settings.crd_version,
            plural=self.settings.crd_plural,
            request_timeout=self.settings.api_timeout_seconds,
        )
        self.reader = KubernetesClusterReader(
            self.k8s_api_client, request_timeout=self.settings.api_timeout_seconds
        )
        self.executor = create_executor(
            self.settings.exec_transport,
            shell=self.settings.exec_shell,
            kubectl_path=self.settings.kubectl_path,
        )
        log.debug(f"Controller context ready (exec transport: {self.settings.exec_transport})")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.k8s_api_client is not None:
            await self.k8s_api_client.close()
            log.debug("Kubernetes API client closed")

    def build_reconciler(self) -> Reconciler:
        return Reconciler(
            store=self.store,
            reader=self.reader,
            executor=self.executor,
            exec_timeout=self.settings.exec_timeout_seconds,
            pass_deadline=self.settings.pass_deadline_seconds,
            max_parallel=self.settings.max_parallel_executions,
            api_timeout=self.settings.api_timeout_seconds,
        )

    def build_controller(self) -> ExecutorController:
        queue = WorkQueue(
            base_delay=self.settings.requeue_base_delay,
            max_delay=self.settings.requeue_max_delay,
        )
        controller = ExecutorController(
            self.build_reconciler(),
            queue,
            workers=self.settings.max_concurrent_reconciles,
        )
        controller.set_watcher(
            ExecutorWatcher(
                self.k8s_api_client,
                enqueue=controller.enqueue,
                on_delete=controller.cancel,
                group=self.settings.crd_group,
                version=self.settings.crd_version,
                plural=self.settings.crd_plural,
                namespace=self.settings.watch_namespace,
                watch_timeout=self.settings.watch_timeout_seconds,
                resync_period=self.settings.resync_period_seconds,
            )
        )
        return controller
