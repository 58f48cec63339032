import asyncio
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp
from kubernetes_asyncio import client, watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubexec.config import DEFAULT_CRD_GROUP, DEFAULT_CRD_PLURAL, DEFAULT_CRD_VERSION
from kubexec.logging import get_logger
from kubexec.models import ResourceKey
from kubexec.utils.retry import with_exponential_backoff

log = get_logger("controller.watcher")

_UNSEEN = object()


class WatchExpired(Exception):
    """The watch resource version is too old and a fresh listing is needed."""


class ExecutorWatcher:
    """
    Turns the Executor watch stream into reconcile requests.

    The watcher lists all executors once, then follows the watch stream from
    the listing's resourceVersion. Creations are always enqueued. Updates are
    enqueued only when ``metadata.generation`` changed, which ignores the
    controller's own status writes. Deletions cancel the pass in flight for
    that executor.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        enqueue: Callable[[ResourceKey], None],
        on_delete: Callable[[ResourceKey], None],
        group: str = DEFAULT_CRD_GROUP,
        version: str = DEFAULT_CRD_VERSION,
        plural: str = DEFAULT_CRD_PLURAL,
        namespace: Optional[str] = None,
        watch_timeout: int = 300,
        resync_period: float = 0.0,
    ):
        self._custom_api = client.CustomObjectsApi(api_client)
        self._enqueue = enqueue
        self._on_delete = on_delete
        self._group = group
        self._version = version
        self._plural = plural
        self._namespace = namespace
        self._watch_timeout = watch_timeout
        self._resync_period = resync_period

        self._resource_version: Optional[str] = None
        self._generations: Dict[ResourceKey, Optional[int]] = {}
        self._shutdown_event = asyncio.Event()
        self._tasks = []

    @property
    def known_keys(self):
        return list(self._generations)

    async def start(self) -> None:
        if self._tasks:
            log.warning("Executor watcher is already running")
            return
        scope = f"namespace {self._namespace}" if self._namespace else "all namespaces"
        log.info(f"Watching {self._plural}.{self._group}/{self._version} in {scope}")

        self._tasks.append(asyncio.create_task(self._watch_loop(), name="executor_watcher"))
        if self._resync_period > 0:
            self._tasks.append(asyncio.create_task(self._resync_loop(), name="executor_resync"))

    async def stop(self) -> None:
        self._shutdown_event.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Executor watcher stopped")

    def _list_call(self) -> Tuple[Callable, Dict[str, Any]]:
        kwargs = {"group": self._group, "version": self._version, "plural": self._plural}
        if self._namespace:
            kwargs["namespace"] = self._namespace
            return self._custom_api.list_namespaced_custom_object, kwargs
        return self._custom_api.list_cluster_custom_object, kwargs

    async def _relist(self) -> None:
        """List every executor, enqueue it, and forget the ones that disappeared."""
        func, kwargs = self._list_call()
        listing = await func(**kwargs)

        seen: Dict[ResourceKey, Optional[int]] = {}
        for item in listing.get("items") or []:
            metadata = item.get("metadata") or {}
            key = ResourceKey(namespace=metadata.get("namespace", ""), name=metadata.get("name", ""))
            seen[key] = metadata.get("generation")

        for key in set(self._generations) - set(seen):
            self._on_delete(key)
        self._generations = seen
        for key in seen:
            self._enqueue(key)

        self._resource_version = (listing.get("metadata") or {}).get("resourceVersion")
        log.info(
            f"Listed {len(seen)} executors at resourceVersion {self._resource_version or 'latest'}"
        )

    @with_exponential_backoff(
        max_retries=None,
        retry_on=(ApiException, aiohttp.ClientError, asyncio.TimeoutError),
    )
    async def _sync_and_watch(self) -> None:
        """Relist if needed, then follow the watch stream until it ends."""
        try:
            if self._resource_version is None:
                await self._relist()

            func, kwargs = self._list_call()
            w = watch.Watch()
            stream = w.stream(
                func,
                resource_version=self._resource_version,
                timeout_seconds=self._watch_timeout,
                allow_watch_bookmarks=True,
                **kwargs,
            )
            async for event in stream:
                if self._shutdown_event.is_set():
                    break
                self.handle_event(event)
        except WatchExpired:
            log.info("Watch resourceVersion expired, relisting executors")
            self._resource_version = None
        except ApiException as e:
            if e.status != 410:
                raise
            log.info(f"Resource version '{self._resource_version}' too old (410 Gone), relisting")
            self._resource_version = None

    async def _watch_loop(self) -> None:
        while not self._shutdown_event.is_set():
            await self._sync_and_watch()
            log.debug("Watch stream ended, reconnecting")

    async def _resync_loop(self) -> None:
        while not self._shutdown_event.is_set():
            await asyncio.sleep(self._resync_period)
            keys = self.known_keys
            log.debug(f"Resync: enqueueing {len(keys)} executors")
            for key in keys:
                self._enqueue(key)

    def handle_event(self, event: Dict[str, Any]) -> None:
        """
        Apply one watch event.

        Raises:
            WatchExpired: If the stream reports that its resourceVersion expired.
        """
        event_type = event.get("type")
        obj = event.get("object") or {}

        if event_type == "ERROR":
            if obj.get("code") == 410:
                raise WatchExpired(obj.get("message", "resource version expired"))
            log.error(
                f"Executor watch error: reason={obj.get('reason')} code={obj.get('code')} "
                f"message={obj.get('message')}"
            )
            return

        metadata = obj.get("metadata") or {}
        if metadata.get("resourceVersion"):
            self._resource_version = metadata["resourceVersion"]
        if event_type == "BOOKMARK":
            return

        key = ResourceKey(namespace=metadata.get("namespace", ""), name=metadata.get("name", ""))
        generation = metadata.get("generation")

        if event_type == "ADDED":
            self._generations[key] = generation
            self._enqueue(key)
        elif event_type == "MODIFIED":
            previous = self._generations.get(key, _UNSEEN)
            self._generations[key] = generation
            if previous is _UNSEEN or generation is None or previous != generation:
                self._enqueue(key)
            else:
                log.debug(f"Ignoring status-only update of {key}")
        elif event_type == "DELETED":
            self._generations.pop(key, None)
            self._on_delete(key)
        else:
            log.warning(f"Ignoring unknown watch event type {event_type!r}")
