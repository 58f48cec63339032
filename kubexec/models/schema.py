"""
kubexec data models for declarations, cluster identities and pass results.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, field_validator

from kubexec.models.base import BaseKubexecModel, FrozenKubexecModel


class ResourceKey(FrozenKubexecModel):
    """Identity of an Executor declaration."""

    namespace: str = Field(..., description="Namespace of the Executor.")
    name: str = Field(..., description="Name of the Executor.")

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "ResourceKey":
        """Build a key from its 'namespace/name' rendering."""
        namespace, sep, name = value.partition("/")
        if not sep or not namespace or not name:
            raise ValueError(f"Expected 'namespace/name', got {value!r}")
        return cls(namespace=namespace, name=name)


class ExecutorSpec(BaseKubexecModel):
    """Declared intent: which containers to target and what to run in them."""

    container_name_pattern: str = Field(
        "",
        validation_alias=AliasChoices(
            "containerNamePattern", "containerName", "container_name_pattern"
        ),
        serialization_alias="containerNamePattern",
        description="Text that a container name must contain to be targeted.",
    )
    command: str = Field(
        "",
        description="Command executed verbatim inside every matched container.",
    )

    @field_validator("container_name_pattern", "command", mode="before")
    @classmethod
    def none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ExecutorStatus(BaseKubexecModel):
    """Observed state written by the reconciler."""

    observed_output: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("observedOutput", "observed_output"),
        serialization_alias="observedOutput",
        description="Aggregate report of the last completed pass.",
    )


class Executor(BaseKubexecModel):
    """An Executor custom resource as read from the API server."""

    namespace: str
    name: str
    generation: Optional[int] = None
    resource_version: Optional[str] = None
    spec: ExecutorSpec = Field(default_factory=ExecutorSpec)
    status: ExecutorStatus = Field(default_factory=ExecutorStatus)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(namespace=self.namespace, name=self.name)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Executor":
        """
        Parse the raw dictionary returned by the custom objects API.

        Args:
            obj: Custom object with ``metadata``, ``spec`` and optional ``status``.

        Returns:
            The parsed Executor.
        """
        metadata = obj.get("metadata") or {}
        return cls(
            namespace=metadata.get("namespace", ""),
            name=metadata.get("name", ""),
            generation=metadata.get("generation"),
            resource_version=metadata.get("resourceVersion"),
            spec=ExecutorSpec.model_validate(obj.get("spec") or {}),
            status=ExecutorStatus.model_validate(obj.get("status") or {}),
        )


class ContainerIdentity(FrozenKubexecModel):
    """A live container discovered during a single pass."""

    namespace: str
    pod_name: str
    container_name: str

    @property
    def label(self) -> str:
        return f"{self.pod_name}/{self.container_name}"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.label}"


class ExecutionStatus(str, Enum):
    """Outcome of running the command in one container."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"  # ran, but exited non-zero or reported failure
    TIMED_OUT = "timed_out"  # ran, but did not finish in time
    ERROR = "error"  # never ran


class ExecutionResult(BaseKubexecModel):
    """Captured output of one container execution."""

    container: ContainerIdentity
    stdout: str = ""
    status: ExecutionStatus = ExecutionStatus.SUCCEEDED
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED


class ReconcileOutcome(str, Enum):
    """What the dispatcher should do after a pass."""

    DONE = "done"
    RETRY = "retry"
    NOOP = "noop"


class ReconcileResult(BaseKubexecModel):
    """Result of one reconciliation pass as seen by the dispatcher."""

    outcome: ReconcileOutcome
    retry_after: Optional[float] = Field(
        None, description="Requested delay (seconds) before retrying; dispatcher backoff if unset."
    )
    reason: Optional[str] = None

    @classmethod
    def done(cls) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.DONE)

    @classmethod
    def noop(cls, reason: Optional[str] = None) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.NOOP, reason=reason)

    @classmethod
    def retry(cls, after: Optional[float] = None, reason: Optional[str] = None) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.RETRY, retry_after=after, reason=reason)
