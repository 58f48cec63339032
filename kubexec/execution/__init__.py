"""Remote command execution inside containers."""

from typing import Optional

from kubernetes_asyncio import client

from kubexec.execution.api import ApiRemoteExecutor
from kubexec.execution.base import OutputBuffer, RemoteExecutor
from kubexec.execution.kubectl import KubectlRemoteExecutor


def create_executor(
    transport: str,
    shell: Optional[str] = None,
    kubectl_path: str = "kubectl",
    configuration: Optional[client.Configuration] = None,
) -> RemoteExecutor:
    """
    Build the remote executor for the configured transport.

    Raises:
        ValueError: If the transport is unknown.
    """
    if transport == "api":
        return ApiRemoteExecutor(configuration=configuration, shell=shell)
    if transport == "kubectl":
        return KubectlRemoteExecutor(kubectl_path=kubectl_path, shell=shell)
    raise ValueError(f"Unsupported exec transport: {transport}")


__all__ = [
    "create_executor",
    "ApiRemoteExecutor",
    "KubectlRemoteExecutor",
    "OutputBuffer",
    "RemoteExecutor",
]
