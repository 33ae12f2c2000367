"""Configuration settings for the CloudSync worker service."""

# flake8: noqa: E501


from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main configuration for the sync worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite://cloudsync.sqlite",
        description="PyDAL URI of the primary (read-write) database",
    )
    database_read_url: Optional[str] = Field(
        default=None,
        description="PyDAL URI of a read replica (defaults to primary)",
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_migrate: bool = Field(
        default=False,
        description="Allow PyDAL to create/alter tables on startup",
    )

    # Task Execution
    task_execution_timeout: int = Field(
        default=60,
        description="Deadline for a single sync task execution in seconds",
    )
    validation_timeout: int = Field(
        default=10,
        description="Deadline for credential validation calls in seconds",
    )
    task_max_retries: int = Field(
        default=3, description="Default retry budget of newly created tasks"
    )
    task_retry_base_delay: int = Field(
        default=10,
        description="Base delay before a failed task is retried, doubled per retry",
    )
    task_retry_max_delay: int = Field(
        default=300, description="Ceiling of the failed task retry delay in seconds"
    )

    # Adapter Calls
    adapter_max_attempts: int = Field(
        default=3, description="Attempts per provider call before giving up"
    )
    adapter_retry_base_delay: float = Field(
        default=10.0,
        description="Base delay between throttled provider calls in seconds",
    )
    adapter_retry_max_delay: float = Field(
        default=300.0,
        description="Ceiling of the delay between throttled provider calls",
    )
    adapter_rate_limit_qps: float = Field(
        default=10.0,
        description="Outbound request rate per cloud account (token bucket)",
    )

    # Task Queue
    queue_workers: int = Field(default=5, description="Number of queue worker coroutines")
    queue_size: int = Field(default=100, description="Maximum queued task ids")

    # Sweeps
    pending_sweep_interval: int = Field(
        default=30, description="Seconds between pending task sweeps"
    )
    pending_sweep_concurrency: int = Field(
        default=5, description="Concurrency ceiling of the pending task sweep"
    )
    failed_sweep_interval: int = Field(
        default=60, description="Seconds between failed task retry sweeps"
    )
    failed_sweep_batch_size: int = Field(
        default=10, description="Failed tasks examined per retry sweep"
    )

    # Auto Sync
    auto_sync_enabled: bool = Field(
        default=True, description="Schedule account syncs from account settings"
    )
    auto_sync_check_interval: int = Field(
        default=60, description="Seconds between auto-sync due checks"
    )

    # Permission Propagation
    propagation_user_page_size: int = Field(
        default=1000,
        description="Maximum users scanned when propagating a group edit",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(default="json", description="Log format (json or text)")

    # Health Check Configuration
    health_check_port: int = Field(
        default=8001,
        description="Port for health check and metrics endpoint",
    )

    sync_on_startup: bool = Field(
        default=False,
        description="Run the pending and failed sweeps once on startup",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format. Must be one of: {valid_formats}")
        return v_lower


# Global settings instance
settings = Settings()
