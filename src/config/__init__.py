"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="sla-tracker", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/sla_tracker",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_calendar_path: Path = Field(
        default=Path("sla_calendar.yaml"),
        description="Path to the default business calendar YAML file"
    )
    sla_breach_scan_interval: int = Field(
        default=60,
        description="Seconds between breach scans (0 disables the job)",
        ge=0
    )
    sla_breach_scan_batch_size: int = Field(
        default=500,
        description="Max overdue instances completed per scan",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class SLAStatus(str, Enum):
    """SLA instance lifecycle states."""
    ACTIVE = "active"
    PAUSED = "paused"
    MET = "met"
    BREACHED = "breached"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SLA_STATUSES


class SLAMetric(str, Enum):
    """Which clock an SLA configuration measures."""
    TIME_TO_FIRST_RESPONSE = "time_to_first_response"
    TIME_TO_RESOLUTION = "time_to_resolution"
    TIME_TO_CLOSE = "time_to_close"


# ========== State machine ==========

TERMINAL_SLA_STATUSES = frozenset({SLAStatus.MET, SLAStatus.BREACHED})

# Source state -> states reachable from it
ALLOWED_TRANSITIONS = {
    SLAStatus.ACTIVE: frozenset({SLAStatus.PAUSED, SLAStatus.MET, SLAStatus.BREACHED}),
    SLAStatus.PAUSED: frozenset({SLAStatus.ACTIVE, SLAStatus.MET, SLAStatus.BREACHED}),
    SLAStatus.MET: frozenset(),
    SLAStatus.BREACHED: frozenset(),
}
