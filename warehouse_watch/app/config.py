"""
Enterprise Configuration Management
Centralized settings using Pydantic Settings with environment variable support.
"""

import os
import re
from typing import List, Optional
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    Supports .env file loading in development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # GCP Configuration
    # ============================================
    gcp_project_id: str = Field(..., description="Google Cloud Project ID")
    bigquery_location: str = Field(default="US", description="BigQuery dataset location")
    bigquery_default_dataset: Optional[str] = Field(
        default=None,
        description="Dataset used to resolve unqualified table names in check queries"
    )
    google_application_credentials: Optional[str] = Field(
        default=None,
        description="Path to GCP service account JSON"
    )

    # ============================================
    # Application Settings
    # ============================================
    app_name: str = Field(default="warehouse-watch")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development", pattern="^(development|staging|production)$")
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # ============================================
    # Check Definitions
    # ============================================
    checks_config_path: str = Field(
        default="./configs/checks/checks.yml",
        description="Path to the check definitions table (.yml/.yaml or .csv)"
    )
    halt_on_check_failure: bool = Field(
        default=False,
        description="Abort the remaining checks when one check fails (default: isolate and continue)"
    )

    # ============================================
    # Query Polling
    # ============================================
    poll_backoff_base_ms: int = Field(
        default=500,
        ge=1,
        description="First wait between job status polls; doubles every poll"
    )
    poll_max_wait_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Wall-clock budget for a single job to complete (None = no deadline)"
    )
    poll_max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of status refreshes per job (None = unbounded)"
    )
    bq_results_page_size: int = Field(default=10000, ge=1, le=100000)

    # ============================================
    # Run Log
    # ============================================
    run_log_backend: str = Field(default="bigquery", pattern="^(bigquery|csv)$")
    run_log_dataset: str = Field(default="warehouse_watch")
    run_log_table: str = Field(default="check_run_log")
    run_log_csv_path: str = Field(default="./logs/check_run_log.csv")
    run_log_max_retry_attempts: int = Field(default=3, ge=1, le=10)

    # ============================================
    # Notification Configuration
    # ============================================
    email_smtp_host: Optional[str] = Field(default=None, description="SMTP server hostname")
    email_smtp_port: int = Field(default=587, ge=25, le=65535, description="SMTP server port")
    email_smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    email_smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    email_smtp_use_tls: bool = Field(default=True, description="Use STARTTLS for SMTP connection")
    email_from_address: Optional[str] = Field(default=None, description="Email sender address")
    email_to_addresses: Optional[str] = Field(
        default=None,
        description="Comma-separated default recipients for checks without their own"
    )
    email_subject_prefix: str = Field(default="[Alert]", description="Prefix for alert subjects")
    email_daily_quota: int = Field(
        default=100,
        ge=0,
        description="Outbound messages allowed per UTC day"
    )
    email_quota_state_path: Optional[str] = Field(
        default="./logs/email_quota.json",
        description="Where sends per UTC day are counted across runs (None = this process only)"
    )

    @field_validator("bigquery_default_dataset", "run_log_dataset")
    @classmethod
    def validate_dataset_name(cls, v: Optional[str]) -> Optional[str]:
        """BigQuery dataset names are letters, digits and underscores only."""
        if v is not None and not re.match(r"^[A-Za-z0-9_]{1,1024}$", v):
            raise ValueError(f"Invalid BigQuery dataset name: {v}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def get_default_recipients(self) -> List[str]:
        """Split the comma-separated default recipient list."""
        if not self.email_to_addresses:
            return []
        return [addr.strip() for addr in self.email_to_addresses.split(",") if addr.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Use LRU cache to avoid reloading environment variables.
    """
    settings_instance = Settings()

    # Google Cloud client libraries only read credentials from the environment
    if settings_instance.google_application_credentials:
        os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings_instance.google_application_credentials

    return settings_instance


# Convenience export
settings = get_settings()
