import asyncio
from typing import Dict, Optional, Set

from kubexec.logging import get_logger
from kubexec.metrics import WORKQUEUE_DEPTH
from kubexec.models import ResourceKey
from kubexec.utils.retry import backoff_delay

log = get_logger("controller.queue")


class WorkQueue:
    """
    De-duplicating queue of executor keys.

    * A key is queued at most once, however often it is added.
    * A key that is added while a worker holds it is not handed to another
      worker; it is queued again when the holder calls ``done``. This gives
      at most one concurrent pass per executor.
    * ``add_rate_limited`` re-adds a key after an exponential backoff that
      grows with the key's failure count until ``forget`` resets it.
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float = 300.0):
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._ready: asyncio.Queue = asyncio.Queue()
        self._dirty: Set[ResourceKey] = set()
        self._processing: Set[ResourceKey] = set()
        self._failures: Dict[ResourceKey, int] = {}
        self._timers: Dict[ResourceKey, asyncio.TimerHandle] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: ResourceKey) -> None:
        """Queue ``key`` unless it is already waiting."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        WORKQUEUE_DEPTH.set(len(self._dirty))
        if key in self._processing:
            return
        self._ready.put_nowait(key)

    def add_after(self, key: ResourceKey, delay: float) -> None:
        """Queue ``key`` once ``delay`` seconds have passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            # Keep whichever requeue fires first
            if existing.when() <= when:
                return
            existing.cancel()
        self._timers[key] = loop.call_at(when, self._fire_timer, key)

    def _fire_timer(self, key: ResourceKey) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: ResourceKey) -> float:
        """
        Queue ``key`` after a backoff that grows with its failure count.

        Returns:
            The delay in seconds before the key becomes ready again.
        """
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        delay = backoff_delay(
            failures, initial_delay=self._base_delay, max_delay=self._max_delay
        )
        self.add_after(key, delay)
        return delay

    def forget(self, key: ResourceKey) -> None:
        """Reset the failure count of ``key``."""
        self._failures.pop(key, None)

    def num_requeues(self, key: ResourceKey) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> Optional[ResourceKey]:
        """
        Wait for the next key and mark it as being processed.

        Returns:
            The key, or None once the queue is shut down.
        """
        if self._shutting_down:
            return None
        key = await self._ready.get()
        if key is None:
            # Pass the shutdown sentinel on to the next waiting worker
            self._ready.put_nowait(None)
            return None
        self._dirty.discard(key)
        self._processing.add(key)
        WORKQUEUE_DEPTH.set(len(self._dirty))
        return key

    def done(self, key: ResourceKey) -> None:
        """Release ``key``; if it was added meanwhile, queue it again."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._ready.put_nowait(key)

    def shutdown(self) -> None:
        """Stop handing out keys and wake every waiting worker."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._ready.put_nowait(None)
        log.debug("Work queue shut down")
