from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "doclink"
    db_username: str = "doclink"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    files_root: Path = Path("/app/files")
    credentials_root: Path = Path("/app/credentials")

    transport_provider: str = "example"
    connect_user_ids: list[str] = Field(default_factory=list)
    max_reconnect_attempts: int = 10
    reconnect_base_delay_seconds: float = 5.0
    reconnect_growth_factor: float = 2.0
    reconnect_max_delay_seconds: float = 30.0
    bootstrap_grace_seconds: float = 5.0
    bootstrap_retry_delay_seconds: float = 20.0
    challenge_ttl_seconds: int = 30
    inbound_handler_threads: int = 4

    max_job_attempts: int = 3
    job_backoff_base_seconds: float = 5.0
    job_backoff_max_seconds: float = 300.0
    job_timeout_ms: int = 90_000
    job_priority: int = 1
    job_poll_interval_seconds: int = 5
    job_stall_timeout_seconds: int = 600
    worker_concurrency: int = 4
    maintenance_interval_seconds: int = 60
    retain_completed_jobs: int = 100
    retain_failed_jobs: int = 500

    supported_mime_types: list[str] = Field(
        default_factory=lambda: [
            "application/pdf",
            "text/plain",
            "text/markdown",
            "text/csv",
        ]
    )
    max_file_size_bytes: int = 50 * 1024 * 1024
    min_extracted_chars: int = 10
    max_analysis_input_chars: int = 50_000
    pdf_engine: str = "pdfplumber"

    analysis_provider: str = "openai"
    analysis_api_key: str = ""
    analysis_model_name: str = ""
    analysis_base_url: str = ""
    analysis_timeout_seconds: int = 60
    analysis_temperature: float = 0.2

    target_processing_time_ms: int = 30_000
    min_detection_accuracy: float = 0.95
