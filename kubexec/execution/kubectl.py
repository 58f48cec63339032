import asyncio
import contextlib
from typing import Callable, List, Optional

from kubexec.errors import ExecutionError
from kubexec.execution.base import OutputBuffer, RemoteExecutor
from kubexec.models import ContainerIdentity

READ_CHUNK_SIZE = 4096

# kubectl reports the remote exit status with this line on stderr
REMOTE_EXIT_MARKER = "command terminated with exit code"

COMMAND_NOT_FOUND_CODES = (126, 127)


class KubectlRemoteExecutor(RemoteExecutor):
    """Runs commands by spawning ``kubectl exec``."""

    transport = "kubectl"

    def __init__(self, kubectl_path: str = "kubectl", shell: Optional[str] = None):
        super().__init__(shell=shell)
        self._kubectl_path = kubectl_path

    def build_command(self, container: ContainerIdentity, argv: List[str]) -> List[str]:
        return [
            self._kubectl_path,
            "exec",
            "--namespace",
            container.namespace,
            container.pod_name,
            "--container",
            container.container_name,
            "--",
            *argv,
        ]

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, write: Callable[[bytes], None]) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            write(chunk)

    async def _exec(
        self, container: ContainerIdentity, argv: List[str], buffer: OutputBuffer
    ) -> None:
        cmd = self.build_command(container, argv)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ExecutionError(f"kubectl binary not found: {self._kubectl_path}") from e
        except OSError as e:
            raise ExecutionError(f"unable to start kubectl: {e}") from e

        try:
            await asyncio.gather(
                self._pump(process.stdout, buffer.write_stdout),
                self._pump(process.stderr, buffer.write_stderr),
            )
            returncode = await process.wait()
        finally:
            # Reached on timeout or cancellation while the child is still alive
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if returncode == 0:
            return

        stderr = buffer.stderr.strip()
        if returncode in COMMAND_NOT_FOUND_CODES:
            message = f"command not found or not executable (exit code {returncode})"
        else:
            message = f"command exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr}"
        raise ExecutionError(
            message, ran=REMOTE_EXIT_MARKER in stderr, exit_code=returncode
        )
