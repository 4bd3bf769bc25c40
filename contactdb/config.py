from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from typing import Optional, Literal
from loguru import logger
import sys


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Application environment"
    )

    database_host: str = Field(default="localhost", description="Database host")
    database_port: int = Field(
        default=5432, ge=1, le=65535, description="Database port"
    )
    database_name: str = Field(
        default="contactdb", min_length=1, description="Database name"
    )
    database_user: str = Field(default="postgres", min_length=1, description="Database username")
    database_password: Optional[str] = Field(
        default="postgres", description="Database password"
    )

    database_pool_min: int = Field(
        default=1, ge=1, le=100, description="Minimum database pool size"
    )
    database_pool_max: int = Field(
        default=20, ge=1, le=100, description="Maximum database pool size"
    )

    # Outscraper (places search provider)
    outscraper_api_key: str = Field(default="", description="Outscraper API key")
    outscraper_base_url: str = Field(
        default="https://api.app.outscraper.com",
        description="Outscraper API base URL",
    )
    outscraper_submit_timeout: float = Field(
        default=60.0, gt=0, le=300, description="Timeout in seconds for query submission"
    )
    outscraper_status_timeout: float = Field(
        default=30.0, gt=0, le=300, description="Timeout in seconds for status checks"
    )
    default_language: str = Field(default="en", min_length=2, description="Default result language")

    # Blob storage (Supabase)
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_service_role_key: Optional[str] = Field(
        default=None, description="Supabase service role key"
    )
    storage_bucket: str = Field(
        default="database_exports", min_length=1, description="Bucket for export files"
    )
    signed_url_ttl_seconds: int = Field(
        default=3600, ge=60, le=604800, description="Lifetime of download URLs"
    )

    # Polling
    poll_interval_seconds: float = Field(
        default=15.0, ge=0, le=3600, description="Delay between polling ticks"
    )
    poll_max_ticks: int = Field(
        default=500, ge=1, description="Maximum ticks a polling flow will run"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} - {message}",
        description="Log format string",
    )
    log_rotation: str = Field(default="100 MB", description="Log file rotation size")
    log_retention: str = Field(default="10 days", description="Log retention period")
    log_file: Optional[str] = Field(default="logs/app.log", description="Log file path")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    app_name: str = Field(default="ContactDB", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    cors_origins: list[str] = Field(default=["*"], description="CORS allowed origins")

    jwt_secret: str = Field(
        default="dev-secret-change-in-production",
        description="Secret key for JWT token signing"
    )

    @field_validator("outscraper_base_url", "supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @model_validator(mode="after")
    def validate_pool_sizes(self) -> "Settings":
        """Ensure max pool size is greater than min pool size"""
        if self.database_pool_max < self.database_pool_min:
            raise ValueError(
                "database_pool_max must be greater than or equal to database_pool_min"
            )
        return self

    @property
    def database_url(self) -> str:
        """Standard database URL for synchronous connections"""
        password = f":{self.database_password}" if self.database_password else ""
        return f"postgresql://{self.database_user}{password}@{self.database_host}:{self.database_port}/{self.database_name}"

    def configure_logging(self) -> None:
        """Configure loguru based on settings"""
        if self.log_json:
            from contactdb.core.logging import setup_json_logging

            setup_json_logging(level=self.log_level)
            return

        logger.remove()

        logger.add(
            sys.stderr, format=self.log_format, level=self.log_level, colorize=True
        )

        if self.log_file:
            logger.add(
                self.log_file,
                format=self.log_format,
                level=self.log_level,
                rotation=self.log_rotation,
                retention=self.log_retention,
                compression="zip",
            )

        logger.info(f"Logging configured for {self.environment} environment")


def get_settings() -> Settings:
    """Get cached settings instance"""
    settings = Settings()
    settings.configure_logging()
    return settings


settings = get_settings()
