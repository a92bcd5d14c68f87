"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnthropicConfig(BaseModel):
    """Anthropic-specific configuration."""

    api_key: str
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 2048
    temperature: float = Field(0.1, ge=0.0, le=1.0)


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: Literal["anthropic"]
    anthropic: AnthropicConfig | None = None


class DatabaseConfig(BaseModel):
    """Postgres connection pool configuration."""

    url: str
    min_size: int = Field(1, ge=1, le=20)
    max_size: int = Field(5, ge=1, le=50)
    timeout: float = Field(10.0, gt=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only postgres DSNs are supported."""
        if not v.startswith(("postgres://", "postgresql://")):
            raise ValueError("Database URL must start with postgres:// or postgresql://")
        return v


class AlertConfig(BaseModel):
    """External alert endpoint configuration."""

    endpoint: str | None = None
    timeout: float = Field(10.0, gt=0, le=120)
    headers: dict[str, str] = {}

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        """Validate alert endpoint URL scheme."""
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(f"Alert endpoint must be an http(s) URL: {v}")
        return v


class PipelineConfig(BaseModel):
    """Enrichment pipeline tuning."""

    severity_threshold: float = Field(70.0, ge=0.0, le=100.0)
    max_thread_context: int = Field(20, ge=1, le=100)


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/situationcord/pipeline.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class RuntimeConfig(BaseModel):
    """Runtime configuration."""

    max_concurrent: int = Field(5, ge=1, le=50, description="Max concurrent pipeline runs")
    processing_timeout: int = Field(300, ge=30, le=600, description="Pipeline timeout in seconds")


class RetryConfig(BaseModel):
    """Retry configuration for pipeline steps."""

    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay: float = Field(1.0, ge=0.0, le=10.0)
    max_delay: float = Field(30.0, ge=0.0, le=300.0)
    exponential_base: float = Field(2.0, ge=1.5, le=4.0)


class SituationConfig(BaseSettings):
    """Root configuration for the SituationCord pipeline."""

    llm: LLMConfig
    database: DatabaseConfig
    alerts: AlertConfig = AlertConfig()
    pipeline: PipelineConfig = PipelineConfig()
    logging: LoggingConfig = LoggingConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    retry: RetryConfig = RetryConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
    )

    @property
    def ai_model(self) -> str | None:
        """Model identifier of the configured provider."""
        if self.llm.provider == "anthropic" and self.llm.anthropic:
            return self.llm.anthropic.model
        return None
