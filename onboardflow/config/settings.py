"""
Application settings for the Onboardflow workflow tracking service.

Settings are grouped into nested sections and loaded from environment
variables (``DATABASE__MONGODB_URL``, ``LOGGING__LEVEL``, ...), an optional
``.env`` file, and the defaults below.
"""

from functools import lru_cache
from typing import Any, Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """MongoDB connection settings."""
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL"
    )
    mongodb_database: str = Field(
        default="onboardflow",
        description="MongoDB database name"
    )
    server_selection_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout in milliseconds"
    )
    max_pool_size: int = Field(
        default=50,
        description="Maximum connection pool size"
    )


class LoggingSettings(BaseModel):
    """Logging configuration settings."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    format: str = Field(
        default="json",
        description="Log format (json/text)"
    )
    enable_correlation_ids: bool = Field(
        default=True,
        description="Enable correlation ID tracking"
    )


class WorkflowSettings(BaseModel):
    """Defaults applied by the workflow services."""
    default_case_prefix: str = Field(
        default="OB",
        description="Case id prefix used when no workflow type is resolved"
    )
    default_stage_duration_days: float = Field(
        default=5,
        description="Stage duration assumed by progress reports when none is recorded"
    )
    default_task_estimated_hours: float = Field(
        default=1,
        description="Estimated hours given to bulk-created tasks"
    )
    reminder_lookahead_days: float = Field(
        default=0,
        description="Days ahead of now a due date still counts as overdue for reminders"
    )
    default_notification_channels: List[str] = Field(
        default=["inApp", "email"],
        description="Channels used when a notification does not name any"
    )
    max_page_size: int = Field(
        default=100,
        description="Upper bound for list page sizes"
    )


class Settings(BaseSettings):
    """
    Application configuration settings.

    Nested sections map to ``SECTION__FIELD`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="Onboardflow",
        description="Application name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode enabled"
    )

    environment: str = Field(
        default="development",
        description="Environment (development/staging/production/test)"
    )

    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Database configuration"
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration"
    )

    workflow: WorkflowSettings = Field(
        default_factory=WorkflowSettings,
        description="Workflow defaults"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for JSON serialization."""
        return self.model_dump(exclude_unset=False, exclude_none=False)


@lru_cache()
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


# Environment variable mapping examples:
# DATABASE__MONGODB_URL=mongodb://mongo:27017
# DATABASE__MONGODB_DATABASE=onboardflow
# LOGGING__LEVEL=DEBUG
# LOGGING__FORMAT=text
# WORKFLOW__DEFAULT_STAGE_DURATION_DAYS=7
