"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    AlertConfig,
    AnthropicConfig,
    DatabaseConfig,
    LLMConfig,
    LoggingConfig,
    PipelineConfig,
    RetryConfig,
    RuntimeConfig,
    SituationConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "SituationConfig",
    # Top-level configs
    "LLMConfig",
    "DatabaseConfig",
    "AlertConfig",
    "PipelineConfig",
    "LoggingConfig",
    "RuntimeConfig",
    "RetryConfig",
    # Provider-specific configs
    "AnthropicConfig",
]
