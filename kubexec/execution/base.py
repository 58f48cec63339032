import abc
import asyncio
import codecs
import shlex
import time
from typing import Dict, List, Optional

from kubexec.errors import ExecutionError
from kubexec.logging import get_logger
from kubexec.metrics import EXECUTION_COUNTER, EXECUTION_DURATION
from kubexec.models import ContainerIdentity, ExecutionResult, ExecutionStatus

log = get_logger("execution")


class OutputBuffer:
    """
    Accumulates the output of one execution as it arrives.

    Transports write into the buffer incrementally so that whatever was
    captured before a timeout or failure is still available afterwards.
    Bytes are decoded incrementally, so a multi-byte character split across
    two chunks is not mangled.
    """

    def __init__(self):
        self._chunks: Dict[str, List[str]] = {"stdout": [], "stderr": []}
        self._decoders = {
            name: codecs.getincrementaldecoder("utf-8")(errors="replace")
            for name in self._chunks
        }

    def _write(self, stream: str, data) -> None:
        if isinstance(data, bytes):
            data = self._decoders[stream].decode(data)
        if data:
            self._chunks[stream].append(data)

    def write_stdout(self, data) -> None:
        self._write("stdout", data)

    def write_stderr(self, data) -> None:
        self._write("stderr", data)

    def flush(self) -> None:
        """Decode any incomplete trailing bytes as replacement characters."""
        for stream, decoder in self._decoders.items():
            tail = decoder.decode(b"", final=True)
            if tail:
                self._chunks[stream].append(tail)

    @property
    def stdout(self) -> str:
        return "".join(self._chunks["stdout"])

    @property
    def stderr(self) -> str:
        return "".join(self._chunks["stderr"])


class RemoteExecutor(abc.ABC):
    """
    Runs a command inside one container and reports the captured output.

    Subclasses implement the transport in ``_exec``; ``run`` adds the parts
    every transport shares: argument splitting, the mandatory timeout,
    failure classification and metrics.
    """

    transport = "base"

    def __init__(self, shell: Optional[str] = None):
        self._shell = shell

    def build_argv(self, command: str) -> List[str]:
        """
        Turn the declared command string into an argument vector.

        With a shell configured the command is handed to ``<shell> -c``
        unchanged; otherwise it is split with shell quoting rules.

        Raises:
            ValueError: If the command has unbalanced quotes.
        """
        if self._shell:
            return [self._shell, "-c", command]
        return shlex.split(command)

    @abc.abstractmethod
    async def _exec(
        self, container: ContainerIdentity, argv: List[str], buffer: OutputBuffer
    ) -> None:
        """
        Run ``argv`` in ``container``, streaming output into ``buffer``.

        Raises:
            ExecutionError: If the command could not be run or did not succeed.
        """

    async def run(
        self, container: ContainerIdentity, command: str, timeout: float
    ) -> ExecutionResult:
        """
        Execute ``command`` in ``container``, waiting at most ``timeout`` seconds.

        Per-container failures are reported in the returned result and never
        raised; only cancellation propagates.

        Args:
            container: Target container.
            command: Command string as declared on the Executor.
            timeout: Upper bound in seconds for the whole execution.

        Returns:
            The execution result, with partial output kept on failure.
        """
        container_log = log.bind(container=str(container))

        try:
            argv = self.build_argv(command)
        except ValueError as e:
            return self._record(
                ExecutionResult(
                    container=container,
                    status=ExecutionStatus.ERROR,
                    error=f"invalid command: {e}",
                )
            )
        if not argv:
            return self._record(
                ExecutionResult(
                    container=container,
                    status=ExecutionStatus.ERROR,
                    error="empty command",
                )
            )

        buffer = OutputBuffer()
        started = time.monotonic()
        status, error = ExecutionStatus.SUCCEEDED, None
        try:
            await asyncio.wait_for(self._exec(container, argv, buffer), timeout=timeout)
        except asyncio.TimeoutError:
            container_log.warning(f"Command timed out after {timeout:.1f}s")
            status, error = ExecutionStatus.TIMED_OUT, f"command timed out after {timeout:.1f}s"
        except ExecutionError as e:
            container_log.warning(f"Command failed: {e}")
            status = ExecutionStatus.FAILED if e.ran else ExecutionStatus.ERROR
            error = str(e)
        else:
            container_log.debug("Command succeeded")
        finally:
            EXECUTION_DURATION.labels(transport=self.transport).observe(
                time.monotonic() - started
            )

        # Output may stop in the middle of a multi-byte character
        buffer.flush()
        return self._record(
            ExecutionResult(container=container, stdout=buffer.stdout, status=status, error=error)
        )

    @staticmethod
    def _record(result: ExecutionResult) -> ExecutionResult:
        EXECUTION_COUNTER.labels(status=result.status.value).inc()
        return result
