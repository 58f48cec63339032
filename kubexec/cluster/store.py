import abc
import asyncio
from typing import Optional

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from kubexec.config import DEFAULT_CRD_GROUP, DEFAULT_CRD_PLURAL, DEFAULT_CRD_VERSION
from kubexec.errors import ResourceFetchError, ResourceNotFoundError, StatusWriteError
from kubexec.logging import get_logger
from kubexec.models import Executor, ResourceKey

log = get_logger("cluster.store")


class ExecutorStore(abc.ABC):
    """Reads Executor declarations and writes their observed status."""

    @abc.abstractmethod
    async def get(self, key: ResourceKey) -> Executor:
        """
        Fetch the current declaration.

        Raises:
            ResourceNotFoundError: If the Executor does not exist.
            ResourceFetchError: For any other failure.
        """

    @abc.abstractmethod
    async def update_status(self, executor: Executor, observed_output: str) -> None:
        """
        Replace the Executor's observed output.

        Raises:
            StatusWriteError: If the write failed.
        """


class KubernetesExecutorStore(ExecutorStore):
    """Executor store backed by the custom objects API."""

    def __init__(
        self,
        api_client: client.ApiClient,
        group: str = DEFAULT_CRD_GROUP,
        version: str = DEFAULT_CRD_VERSION,
        plural: str = DEFAULT_CRD_PLURAL,
        request_timeout: Optional[float] = None,
    ):
        self._custom_api = client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._plural = plural
        self._request_timeout = request_timeout

    async def get(self, key: ResourceKey) -> Executor:
        try:
            obj = await self._custom_api.get_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=key.namespace,
                plural=self._plural,
                name=key.name,
                _request_timeout=self._request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(key.namespace, key.name) from e
            raise ResourceFetchError(
                f"API error fetching executor {key}: {e.status} - {e.reason}",
                {"status": e.status},
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ResourceFetchError(f"Error fetching executor {key}: {e!r}") from e

        return Executor.from_object(obj)

    async def update_status(self, executor: Executor, observed_output: str) -> None:
        body = {"status": {"observedOutput": observed_output}}
        try:
            await self._custom_api.patch_namespaced_custom_object_status(
                group=self._group,
                version=self._version,
                namespace=executor.namespace,
                plural=self._plural,
                name=executor.name,
                body=body,
                _request_timeout=self._request_timeout,
            )
        except ApiException as e:
            raise StatusWriteError(
                f"API error updating status of {executor.key}: {e.status} - {e.reason}",
                {"status": e.status},
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StatusWriteError(f"Error updating status of {executor.key}: {e!r}") from e

        log.debug(f"Updated status of executor {executor.key} ({len(observed_output)} chars)")
