"""
CSS Feed Visualisation Transfer
Centralized Configuration Management

Pydantic settings with environment variable support. Every value can be set
through a ``FEEDVIZ_``-prefixed environment variable or a ``.env`` file and is
overridden per invocation by the command line.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionMode(str, Enum):
    """How mapped rows reach the warehouse"""
    STREAM = "stream"
    INSERT = "insert"


class AccountSettings(BaseSettings):
    """CSS account and credential files"""

    model_config = SettingsConfigDict(env_prefix="FEEDVIZ_", env_file=".env", extra="ignore")

    config_dir: str = Field(default="./config", description="Directory holding account and credential files")
    account_info_file: str = Field(default="account-info.json", description="Account info file name")
    service_account_file: str = Field(default="service-account.json", description="Service account key file name")

    # Direct overrides; any one present skips the account info file
    merchant_id: Optional[int] = Field(default=None, description="CSS merchant ID override")
    domain_id: Optional[int] = Field(default=None, description="CSS domain ID override")
    group_id: Optional[int] = Field(default=None, description="CSS group ID override")

    @property
    def has_overrides(self) -> bool:
        """Check if any account identifier was supplied directly"""
        return any(v is not None for v in (self.merchant_id, self.domain_id, self.group_id))


class WarehouseSettings(BaseSettings):
    """BigQuery destination configuration"""

    model_config = SettingsConfigDict(env_prefix="FEEDVIZ_", env_file=".env", extra="ignore")

    project_id: Optional[str] = Field(default=None, description="GCP project; defaults to the service account's")
    dataset_name: str = Field(default="css_feedviz", description="Destination dataset")
    dataset_location: str = Field(default="EU", description="Dataset location")
    ingestion_mode: IngestionMode = Field(default=IngestionMode.STREAM, description="stream or insert")
    batch_size: int = Field(default=100, gt=0, description="Rows per append or insert call")
    max_in_flight: Optional[int] = Field(default=None, gt=0, description="Bound on outstanding appends")


class MonitoringSettings(BaseSettings):
    """Logging and metrics configuration"""

    model_config = SettingsConfigDict(env_prefix="FEEDVIZ_", env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    pushgateway_url: Optional[str] = Field(default=None, description="Prometheus pushgateway for run metrics")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format value"""
        if v.lower() not in ("json", "text"):
            raise ValueError("Log format must be one of: ['json', 'text']")
        return v.lower()


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="css-feedviz", description="Application name")
    app_env: str = Field(default="development", description="Environment")

    # Subsystem configurations
    account: AccountSettings = Field(default_factory=AccountSettings)
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
