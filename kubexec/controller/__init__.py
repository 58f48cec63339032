"""Watch-driven dispatch of reconciliation passes."""

from kubexec.controller.manager import ExecutorController
from kubexec.controller.queue import WorkQueue
from kubexec.controller.watcher import ExecutorWatcher, WatchExpired

__all__ = ["ExecutorController", "ExecutorWatcher", "WatchExpired", "WorkQueue"]
