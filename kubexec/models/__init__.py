"""
kubexec data models module.

This module provides Pydantic models for kubexec data types and validation.
"""

from __future__ import annotations

from kubexec.models.base import BaseKubexecModel, FrozenKubexecModel
from kubexec.models.schema import (
    ContainerIdentity,
    ExecutionResult,
    ExecutionStatus,
    Executor,
    ExecutorSpec,
    ExecutorStatus,
    ReconcileOutcome,
    ReconcileResult,
    ResourceKey,
)

__all__ = [
    # Base types
    "BaseKubexecModel",
    "FrozenKubexecModel",
    # Declarations
    "ResourceKey",
    "Executor",
    "ExecutorSpec",
    "ExecutorStatus",
    # Pass data
    "ContainerIdentity",
    "ExecutionResult",
    "ExecutionStatus",
    "ReconcileOutcome",
    "ReconcileResult",
]
