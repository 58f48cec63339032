import json
from typing import List, Optional

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException
from kubernetes_asyncio.stream import WsApiClient

from kubexec.errors import ExecutionError
from kubexec.execution.base import OutputBuffer, RemoteExecutor
from kubexec.models import ContainerIdentity

# Channels of the v4.channel.k8s.io exec protocol
STDOUT_CHANNEL = 1
STDERR_CHANNEL = 2
ERROR_CHANNEL = 3


def parse_exec_status(data: str, stderr: str = "") -> Optional[ExecutionError]:
    """
    Interpret the status document sent on the error channel.

    Args:
        data: JSON ``Status`` object sent by the API server when the command ends.
        stderr: Standard error captured so far, appended to failure messages.

    Returns:
        None when the command succeeded, otherwise the error describing the failure.
    """
    try:
        status = json.loads(data)
    except ValueError:
        return ExecutionError(f"unreadable exec status: {data.strip()}", ran=True)

    if status.get("status") == "Success":
        return None

    exit_code = None
    for cause in (status.get("details") or {}).get("causes") or []:
        if cause.get("reason") == "ExitCode":
            try:
                exit_code = int(cause.get("message"))
            except (TypeError, ValueError):
                pass

    message = status.get("message") or status.get("reason") or "command failed"
    if stderr.strip():
        message = f"{message}: {stderr.strip()}"
    return ExecutionError(message, ran=True, exit_code=exit_code)


class ApiRemoteExecutor(RemoteExecutor):
    """Runs commands through the pod exec subresource over a websocket."""

    transport = "api"

    def __init__(
        self,
        configuration: Optional[client.Configuration] = None,
        shell: Optional[str] = None,
    ):
        super().__init__(shell=shell)
        self._configuration = configuration

    async def _exec(
        self, container: ContainerIdentity, argv: List[str], buffer: OutputBuffer
    ) -> None:
        failure: Optional[ExecutionError] = None
        saw_status = False

        async with WsApiClient(configuration=self._configuration) as ws_api:
            core_api = client.CoreV1Api(api_client=ws_api)
            try:
                connection = await core_api.connect_get_namespaced_pod_exec(
                    name=container.pod_name,
                    namespace=container.namespace,
                    container=container.container_name,
                    command=argv,
                    stderr=True,
                    stdin=False,
                    stdout=True,
                    tty=False,
                    _preload_content=False,
                )
                async with connection as ws:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.ERROR:
                            raise ExecutionError(
                                f"exec stream error: {ws.exception()!r}", ran=True
                            )
                        if msg.type not in (aiohttp.WSMsgType.BINARY, aiohttp.WSMsgType.TEXT):
                            break

                        data = msg.data if isinstance(msg.data, bytes) else msg.data.encode("utf-8")
                        if not data:
                            continue
                        channel, payload = data[0], data[1:]
                        if channel == STDOUT_CHANNEL:
                            buffer.write_stdout(payload)
                        elif channel == STDERR_CHANNEL:
                            buffer.write_stderr(payload)
                        elif channel == ERROR_CHANNEL and payload:
                            saw_status = True
                            failure = parse_exec_status(
                                payload.decode("utf-8", "replace"), buffer.stderr
                            )
            except ApiException as e:
                raise ExecutionError(f"exec request rejected: {e.status} - {e.reason}") from e
            except aiohttp.ClientError as e:
                raise ExecutionError(f"exec connection failed: {e!r}") from e

        if failure is not None:
            raise failure
        if not saw_status:
            raise ExecutionError("exec stream closed without reporting a status", ran=True)
