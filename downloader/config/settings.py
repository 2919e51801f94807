from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ItemCheckerType(str, Enum):
    MOCK = "mock"
    S3 = "s3"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Download Jobs", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of server processes")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./download_jobs.db",
        description="Database connection URL",
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(
        default=20, description="Database max overflow connections"
    )
    db_pool_timeout: int = Field(
        default=30, description="Database pool timeout in seconds"
    )
    db_pool_recycle: int = Field(
        default=3600, description="Database connection recycle time in seconds"
    )
    db_echo: bool = Field(default=False, description="Echo SQL statements")

    # Job processing
    run_workers: bool = Field(
        default=True, description="Run the worker pool inside the API process"
    )
    job_concurrency: int = Field(
        default=5, ge=1, description="Number of concurrent workers"
    )
    job_poll_interval_ms: int = Field(
        default=500, ge=1, description="Idle wait between claim attempts"
    )
    job_lease_seconds: float = Field(
        default=30.0, gt=0, description="Lease duration granted on claim/progress"
    )
    job_max_attempts: int = Field(
        default=3, ge=1, description="Attempts before a job is dead-lettered"
    )
    job_backoff_base_ms: int = Field(
        default=2000, ge=0, description="First retry delay, doubled per attempt"
    )
    job_max_backoff_s: float = Field(
        default=300.0, ge=0, description="Upper bound for a retry delay"
    )
    retention_sweep_interval_s: float = Field(
        default=300.0, gt=0, description="Interval between retention sweeps"
    )

    # Retention
    completed_keep_count: int = Field(default=100, ge=0)
    completed_max_age_s: int = Field(default=24 * 3600, ge=0)
    failed_keep_count: int = Field(default=50, ge=0)
    failed_max_age_s: int = Field(default=7 * 24 * 3600, ge=0)

    # Items
    item_id_min: int = Field(default=10_000, description="Smallest valid item id")
    item_id_max: int = Field(default=100_000_000, description="Largest valid item id")
    max_items_per_job: int = Field(
        default=1000, ge=1, description="Maximum item ids per job"
    )

    # Item checker
    item_checker: ItemCheckerType = Field(
        default=ItemCheckerType.MOCK, description="Item availability backend"
    )
    mock_divisor: int = Field(
        default=7, ge=1, description="Mock checker: ids divisible by this exist"
    )
    download_base_url: str = Field(
        default="https://storage.example.com",
        description="Base URL for mock download links",
    )
    download_url_expires_s: int = Field(
        default=3600, ge=1, description="Presigned download URL lifetime"
    )
    s3_bucket_name: str = Field(default="", description="S3 bucket with downloads")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_endpoint_url: str | None = Field(
        default=None, description="Custom S3 endpoint (MinIO, LocalStack)"
    )
    s3_access_key_id: str | None = Field(default=None)
    s3_secret_access_key: str | None = Field(default=None)
    s3_force_path_style: bool = Field(default=False)

    # Simulated long-running downloads
    item_delay_enabled: bool = Field(
        default=False, description="Sleep before each item check"
    )
    item_delay_min_ms: int = Field(default=10_000, ge=0)
    item_delay_max_ms: int = Field(default=200_000, ge=0)

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        if self.item_checker == ItemCheckerType.S3 and not self.s3_bucket_name:
            raise ValueError("ITEM_CHECKER=s3 requires S3_BUCKET_NAME to be set.")

        if self.environment == "production" and self.item_checker == ItemCheckerType.MOCK:
            raise ValueError(
                "ITEM_CHECKER=mock is not allowed in production environment. "
                "Use ITEM_CHECKER=s3 for production deployments."
            )

        if self.item_id_min > self.item_id_max:
            raise ValueError("ITEM_ID_MIN must not be greater than ITEM_ID_MAX")

        if self.item_delay_min_ms > self.item_delay_max_ms:
            raise ValueError(
                "ITEM_DELAY_MIN_MS must not be greater than ITEM_DELAY_MAX_MS"
            )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings

