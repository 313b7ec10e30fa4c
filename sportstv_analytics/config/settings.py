"""
SportsTV Streaming Analytics
Centralized Configuration Management

Pydantic settings for the target warehouse, the two transaction sources,
batch sizing and logging. Every value can be supplied through environment
variables or a local ``.env`` file.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Target warehouse (MySQL) configuration"""

    model_config = SettingsConfigDict(env_prefix="MYSQL_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=15435, description="Database port")
    db: str = Field(default="defaultdb", description="Database name")
    user: str = Field(default="analytics", description="Database user")
    password: SecretStr = Field(default="change-me", description="Database password")
    driver: str = Field(default="mysql+pymysql", description="SQLAlchemy dialect+driver")
    echo: bool = Field(default=False, description="Echo SQL statements")
    url: Optional[str] = Field(default=None, description="Full database URL (overrides host/port)")

    def get_url(self) -> str:
        """Database URL - uses MYSQL_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        return (
            f"{self.driver}://{self.user}:{self.password.get_secret_value()}"
            f"@{self.host}:{self.port}/{self.db}"
        )


class SourceSettings(BaseSettings):
    """Transaction source locations"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    sqlite_path: str = Field(
        default="data/subscribersDB.sqlitedb",
        description="Operational SQLite database with reference tables and streaming_txns",
    )
    csv_path: str = Field(
        default="data/new-streaming-transactions-98732.csv",
        description="Flat-file streaming transaction export",
    )
    csv_delimiter: str = Field(default=",", description="CSV field delimiter")

    @property
    def sqlite_url(self) -> str:
        """SQLAlchemy URL for the operational store"""
        return f"sqlite:///{self.sqlite_path}"


class PipelineSettings(BaseSettings):
    """Batch sizing for reads and writes, validation thresholds"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    batch_size: int = Field(default=50_000, gt=0, description="Source rows per batch")
    insert_batch_size: int = Field(default=500, gt=0, description="Fact rows per upsert statement")
    dimension_batch_size: int = Field(default=500, gt=0, description="Dimension rows per insert")
    load_dimensions: bool = Field(default=True, description="Reload dimension tables before facts")
    count_tolerance: int = Field(default=0, ge=0, description="Allowed fact total vs valid record gap")
    min_retention_pct: float = Field(
        default=50.0, ge=0, le=100, description="Retention below this raises a validation warning"
    )


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


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
    app_name: str = Field(default="sportstv-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
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
