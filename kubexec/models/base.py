"""
Base model for kubexec models using Pydantic.
"""

from pydantic import BaseModel, ConfigDict


class BaseKubexecModel(BaseModel):
    """Base model with common configuration using Pydantic v2 style."""

    model_config = ConfigDict(
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )


class FrozenKubexecModel(BaseKubexecModel):
    """Immutable, hashable variant used for identities."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )
