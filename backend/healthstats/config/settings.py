"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "HealthStats Ingest"
    app_version: str = "1.0.0"
    debug: bool = False

    # Storage
    storage_type: str = "local"  # local, s3
    local_storage_path: str = "./data"
    aws_region: str = "us-east-1"
    aws_bucket_name: Optional[str] = None
    data_prefix: str = "data"
    jobs_prefix: str = "jobs"

    # Record boundary extraction
    extractor_chunk_size: int = 32 * 1024  # scan once the buffer exceeds 32KB
    extractor_max_buffer_size: int = 1024 * 1024  # 1MB
    extractor_fail_on_overflow: bool = False
    stream_read_size: int = 64 * 1024

    # Persistence
    batch_size: int = 50
    snapshot_write_attempts: int = 4
    snapshot_retry_wait_seconds: float = 1.0

    # Memory sampling
    memory_threshold_mb: float = 768.0
    memory_force_gc: bool = True

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/healthstats.log"
    log_file_enabled: bool = False
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
