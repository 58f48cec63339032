# -*- coding: utf-8 -*-
import logging
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
ExecTransport = Literal["api", "kubectl"]

DEFAULT_CRD_GROUP = "exec.chocolate-chip-stack.stackathon"
DEFAULT_CRD_VERSION = "v1"
DEFAULT_CRD_PLURAL = "executors"


class Settings(BaseSettings):
    """
    Controller configuration settings loaded from environment variables or .env file.
    """

    log_level: LogLevel = Field("INFO", validation_alias="LOG_LEVEL")
    log_to_file: bool = Field(
        False,
        validation_alias="LOG_TO_FILE",
        description="Also write logs to a rotating file under KUBEXEC_LOG_DIR.",
    )

    # Custom resource coordinates
    crd_group: str = Field(DEFAULT_CRD_GROUP, validation_alias="CRD_GROUP")
    crd_version: str = Field(DEFAULT_CRD_VERSION, validation_alias="CRD_VERSION")
    crd_plural: str = Field(DEFAULT_CRD_PLURAL, validation_alias="CRD_PLURAL")

    # Watch / dispatch settings
    watch_namespace: Optional[str] = Field(
        None,
        validation_alias="WATCH_NAMESPACE",
        description="Restrict the controller to a single namespace (all namespaces if unset).",
    )
    watch_timeout_seconds: int = Field(
        300,
        validation_alias="WATCH_TIMEOUT_SECONDS",
        description="Server-side timeout for a single watch request.",
        gt=0,
    )
    resync_period_seconds: float = Field(
        0.0,
        validation_alias="RESYNC_PERIOD_SECONDS",
        description="Periodically re-enqueue every known executor (0 disables resync).",
        ge=0.0,
    )
    max_concurrent_reconciles: int = Field(
        4,
        validation_alias="MAX_CONCURRENT_RECONCILES",
        description="Number of executors reconciled concurrently.",
        gt=0,
    )
    requeue_base_delay: float = Field(
        1.0,
        validation_alias="REQUEUE_BASE_DELAY",
        description="Initial delay (seconds) before a failed pass is retried.",
        gt=0.0,
    )
    requeue_max_delay: float = Field(
        300.0,
        validation_alias="REQUEUE_MAX_DELAY",
        description="Upper bound (seconds) for the retry backoff.",
        gt=0.0,
    )

    # Execution settings
    exec_transport: ExecTransport = Field(
        "api",
        validation_alias="EXEC_TRANSPORT",
        description="How commands reach containers: 'api' (exec subresource) or 'kubectl'.",
    )
    exec_timeout_seconds: float = Field(
        30.0,
        validation_alias="EXEC_TIMEOUT_SECONDS",
        description="Maximum time (seconds) for a single container execution.",
        gt=0.0,
    )
    pass_deadline_seconds: Optional[float] = Field(
        None,
        validation_alias="PASS_DEADLINE_SECONDS",
        description="Overall execution budget for one pass (defaults to exec timeout x matches).",
        gt=0.0,
    )
    max_parallel_executions: int = Field(
        1,
        validation_alias="MAX_PARALLEL_EXECUTIONS",
        description="Containers executed concurrently within one pass (1 = sequential).",
        gt=0,
    )
    api_timeout_seconds: float = Field(
        15.0,
        validation_alias="API_TIMEOUT_SECONDS",
        description="Timeout (seconds) for fetching executors and listing pods.",
        gt=0.0,
    )
    exec_shell: Optional[str] = Field(
        None,
        validation_alias="EXEC_SHELL",
        description="Run commands through '<shell> -c' instead of splitting them into arguments.",
    )
    kubectl_path: str = Field("kubectl", validation_alias="KUBECTL_PATH")

    metrics_port: int = Field(
        8080,
        validation_alias="METRICS_PORT",
        description="Port for the Prometheus metrics endpoint (0 disables it).",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level_case_insensitive(cls, value: str) -> str:
        """Ensure log level is uppercase before validation."""
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("exec_transport", mode="before")
    @classmethod
    def validate_transport_case_insensitive(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("watch_namespace", "exec_shell", mode="before")
    @classmethod
    def empty_string_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def log_level_int(self) -> int:
        """Return the integer logging level."""
        level = logging.getLevelName(self.log_level)
        return (
            level
            if isinstance(level, int) and level != logging.NOTSET
            else logging.INFO
        )


# Singleton instance of settings for application-wide use.
settings = Settings()
