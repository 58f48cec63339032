"""
Exception classes for the kubexec controller.

Each class corresponds to one failure category of a reconciliation pass; the
reconciler decides per category whether the pass degrades, completes or asks
to be retried.
"""

from typing import Any, Dict, Optional


class KubexecError(Exception):
    """Base exception class for all kubexec exceptions."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ResourceNotFoundError(KubexecError):
    """Raised when an Executor resource no longer exists."""

    def __init__(self, namespace: str, name: str):
        super().__init__(
            f"Executor not found: {namespace}/{name}",
            {"namespace": namespace, "name": name},
        )


class ResourceFetchError(KubexecError):
    """Raised when an Executor resource could not be read for any reason other than absence."""
    pass


class ClusterReadError(KubexecError):
    """Raised when listing the live containers of a namespace fails."""

    def __init__(self, namespace: str, reason: str):
        super().__init__(
            f"Unable to list containers in namespace {namespace}: {reason}",
            {"namespace": namespace, "reason": reason},
        )


class ExecutionError(KubexecError):
    """
    Raised by an executor transport when a command cannot be run or finishes unsuccessfully.

    ``ran`` distinguishes a command that started and failed (non-zero exit,
    command not found inside the container) from one that never reached the
    container (connection failure, missing kubectl binary).
    """

    def __init__(self, message: str, ran: bool = False, exit_code: Optional[int] = None):
        details: Dict[str, Any] = {"ran": ran}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(message, details)
        self.ran = ran
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


class StatusWriteError(KubexecError):
    """Raised when the observed output could not be written back to the Executor status."""
    pass
