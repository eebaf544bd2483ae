"""Configuration and logging setup using pydantic-settings."""
import logging
import sys
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pythonjsonlogger import jsonlogger


class Settings(BaseSettings):
    """Engine settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="JOBFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Handler timeouts
    api_timeout_ms: int = Field(
        default=30000,
        description="Default APICall timeout in milliseconds",
    )
    script_timeout_ms: int = Field(
        default=30000,
        description="Default Script timeout in milliseconds",
    )
    script_python: str = Field(
        default_factory=lambda: sys.executable,
        description="Interpreter used to run Script jobs",
    )

    # Cancellation
    cancel_poll_interval_ms: int = Field(
        default=50,
        description="How often awaiting handlers check the cancellation token",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("api_timeout_ms", "script_timeout_ms", "cancel_poll_interval_ms")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts and intervals must be positive")
        return v


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None


class JobflowJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with standardized field names."""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for key in ("run_id", "job_id", "job_kind"):
            value = getattr(record, key, None)
            if value:
                log_record[key] = value


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger, as plain text or JSON lines."""
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(JobflowJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
