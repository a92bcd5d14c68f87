"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path

import yaml

from .schema import SituationConfig


def substitute_env_vars(text: str) -> str:
    """
    Replace ${VAR_NAME} patterns with environment variable values.

    Args:
        text: Text containing ${VAR_NAME} patterns

    Returns:
        Text with environment variables substituted

    Raises:
        ValueError: If a referenced environment variable is not found
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(f"Environment variable {var_name} not found")
        return value

    return re.sub(r"\$\{([^}]+)\}", replacer, text)


def load_config(path: Path) -> SituationConfig:
    """
    Load configuration from YAML file with environment variable substitution.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated SituationConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If environment variables are missing or config is invalid
        ValidationError: If config doesn't match schema
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open() as f:
        raw_yaml = f.read()

    config_dict = yaml.safe_load(substitute_env_vars(raw_yaml))
    if not isinstance(config_dict, dict):
        raise ValueError(f"Configuration file is empty or not a mapping: {path}")

    config = SituationConfig.model_validate(config_dict)
    validate_config(config)

    return config


def validate_config(config: SituationConfig) -> None:
    """
    Perform additional cross-field validation.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If provider-specific config is missing or limits conflict
    """
    if config.llm.provider == "anthropic" and config.llm.anthropic is None:
        raise ValueError("Anthropic provider selected but anthropic config missing")

    if config.database.min_size > config.database.max_size:
        raise ValueError("database.min_size cannot exceed database.max_size")

    if config.retry.initial_delay > config.retry.max_delay:
        raise ValueError("retry.initial_delay cannot exceed retry.max_delay")
