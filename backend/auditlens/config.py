"""
AuditLens Application Configuration
Environment-driven settings for the analytics API
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "AuditLens"
    app_version: str = "1.0.0"
    debug: bool = False

    # Security (token verification only, issuance lives in the auth service)
    secret_key: str = Field(default="change-me-in-production-please-32chars")
    algorithm: str = "HS256"

    # MongoDB Configuration
    mongodb_url: str = Field(
        default="mongodb://localhost:27017/auditlens",
        description="MongoDB connection string for the audit database",
    )
    mongodb_database: str = Field(default="auditlens", description="MongoDB database name")
    mongodb_min_pool_size: int = Field(default=10)
    mongodb_max_pool_size: int = Field(default=100)
    mongodb_ssl: bool = Field(default=False)
    mongodb_ssl_cert: Optional[str] = Field(default=None)
    mongodb_ssl_ca: Optional[str] = Field(default=None)

    # Analytics
    default_average_duration_days: float = Field(
        default=12.4,
        description="Average evaluation duration reported when no audit has a usable date range",
    )
    recent_evaluations_limit: int = Field(default=10, ge=1)
    top_entities_default_limit: int = Field(default=10, ge=1)
    high_severity_alert_threshold: int = Field(default=50, ge=0)
    preview_sample_size: int = Field(default=20, ge=1)

    # Logging
    log_level: str = "INFO"

    @validator("mongodb_url")
    def validate_mongodb_url(cls, v):
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("MongoDB URL must start with mongodb:// or mongodb+srv://")
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    class Config:
        env_file = ".env"
        env_prefix = "AUDITLENS_"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings"""
    return Settings()
