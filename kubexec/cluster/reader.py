import abc
import asyncio
from typing import List, Optional

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from kubexec.errors import ClusterReadError
from kubexec.logging import get_logger
from kubexec.models import ContainerIdentity

log = get_logger("cluster.reader")


class ClusterStateReader(abc.ABC):
    """Lists the live containers of a namespace."""

    @abc.abstractmethod
    async def list_containers(self, namespace: str) -> List[ContainerIdentity]:
        """
        Return the running containers of ``namespace`` in discovery order.

        Raises:
            ClusterReadError: If the listing could not be obtained.
        """


def _running_container_names(pod: client.V1Pod) -> List[str]:
    """Names of the pod's containers that are running, in pod spec order."""
    spec_containers = (pod.spec.containers if pod.spec else None) or []
    statuses = {
        status.name: status
        for status in ((pod.status.container_statuses if pod.status else None) or [])
    }

    names = []
    for container in spec_containers:
        status = statuses.get(container.name)
        # No status yet means the kubelet has not reported; trust the pod phase
        if status is not None and (status.state is None or status.state.running is None):
            continue
        names.append(container.name)
    return names


def containers_from_pods(namespace: str, pods: List[client.V1Pod]) -> List[ContainerIdentity]:
    """
    Flatten a pod listing into container identities.

    Only pods in phase ``Running`` that are not being deleted are considered.
    The API server's ordering of pods and the pod spec's ordering of
    containers are preserved.
    """
    identities: List[ContainerIdentity] = []
    for pod in pods:
        metadata = pod.metadata
        if metadata is None or not metadata.name:
            continue
        if metadata.deletion_timestamp is not None:
            continue
        if pod.status is None or pod.status.phase != "Running":
            continue
        for container_name in _running_container_names(pod):
            identities.append(
                ContainerIdentity(
                    namespace=metadata.namespace or namespace,
                    pod_name=metadata.name,
                    container_name=container_name,
                )
            )
    return identities


class KubernetesClusterReader(ClusterStateReader):
    """Cluster state reader backed by the core/v1 pod listing."""

    def __init__(self, api_client: client.ApiClient, request_timeout: Optional[float] = None):
        self._core_api = client.CoreV1Api(api_client)
        self._request_timeout = request_timeout

    async def list_containers(self, namespace: str) -> List[ContainerIdentity]:
        try:
            pods = await self._core_api.list_namespaced_pod(
                namespace=namespace,
                _request_timeout=self._request_timeout,
            )
        except ApiException as e:
            raise ClusterReadError(namespace, f"{e.status} - {e.reason}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ClusterReadError(namespace, repr(e)) from e

        identities = containers_from_pods(namespace, pods.items or [])
        log.debug(f"Discovered {len(identities)} running containers in namespace {namespace}")
        return identities
