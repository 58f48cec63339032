"""
Shared pytest fixtures for kubexec tests.

This module provides in-memory stand-ins for the reconciler's collaborators:
- FakeStore: Executor declarations and recorded status writes
- FakeReader: a scripted container listing
- FakeExecutor: a RemoteExecutor whose transport is scripted per container
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from kubexec.cluster.reader import ClusterStateReader
from kubexec.cluster.store import ExecutorStore
from kubexec.errors import ResourceNotFoundError
from kubexec.execution.base import OutputBuffer, RemoteExecutor
from kubexec.models import ContainerIdentity, Executor, ExecutorSpec, ResourceKey

NAMESPACE = "default"


def make_container(name: str, pod: Optional[str] = None, namespace: str = NAMESPACE) -> ContainerIdentity:
    return ContainerIdentity(namespace=namespace, pod_name=pod or name, container_name=name)


def make_executor(pattern: str = "web", command: str = "echo hi", name: str = "batch") -> Executor:
    return Executor(
        namespace=NAMESPACE,
        name=name,
        generation=1,
        spec=ExecutorSpec(container_name_pattern=pattern, command=command),
    )


class FakeStore(ExecutorStore):
    def __init__(self):
        self.executors: Dict[ResourceKey, Executor] = {}
        self.status_writes: List[tuple] = []
        self.get_error: Optional[BaseException] = None
        self.status_error: Optional[BaseException] = None

    def put(self, executor: Executor) -> ResourceKey:
        self.executors[executor.key] = executor
        return executor.key

    async def get(self, key: ResourceKey) -> Executor:
        if self.get_error is not None:
            raise self.get_error
        if key not in self.executors:
            raise ResourceNotFoundError(key.namespace, key.name)
        return self.executors[key]

    async def update_status(self, executor: Executor, observed_output: str) -> None:
        if self.status_error is not None:
            raise self.status_error
        self.status_writes.append((executor.key, observed_output))


class FakeReader(ClusterStateReader):
    def __init__(self, containers: Optional[List[ContainerIdentity]] = None):
        self.containers = containers or []
        self.error: Optional[BaseException] = None
        self.calls: List[str] = []

    async def list_containers(self, namespace: str) -> List[ContainerIdentity]:
        self.calls.append(namespace)
        if self.error is not None:
            raise self.error
        return list(self.containers)


class FakeExecutor(RemoteExecutor):
    """
    Scripted transport. Per container name, a behaviour is one of:
      - a string: written to stdout, success
      - an exception: partial output (if any) written, then raised
      - "hang": writes ``partial`` then sleeps until cancelled
    Containers without a behaviour echo the command.
    """

    transport = "fake"

    def __init__(self, behaviours: Optional[dict] = None, partial: str = "", delays: Optional[dict] = None):
        super().__init__()
        self.behaviours = behaviours or {}
        self.partial = partial
        self.delays = delays or {}
        self.calls: List[tuple] = []
        self.started = asyncio.Event()

    async def _exec(self, container: ContainerIdentity, argv: List[str], buffer: OutputBuffer) -> None:
        self.calls.append((container.container_name, argv))
        self.started.set()
        if container.container_name in self.delays:
            await asyncio.sleep(self.delays[container.container_name])

        behaviour = self.behaviours.get(container.container_name)
        if behaviour is None:
            buffer.write_stdout(" ".join(argv[1:]) + "\n")
        elif behaviour == "hang":
            buffer.write_stdout(self.partial)
            await asyncio.sleep(3600)
        elif isinstance(behaviour, BaseException):
            buffer.write_stdout(self.partial)
            raise behaviour
        else:
            buffer.write_stdout(behaviour)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def reader():
    return FakeReader(
        [make_container("web-1"), make_container("web-2"), make_container("db-1")]
    )
