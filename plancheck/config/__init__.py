"""Configuration management."""

from .config import (
    Config,
    ConfigError,
    DatabaseConfig,
    EvaluationConfig,
    LoggingConfig,
    Manifest,
    load_config,
    load_manifest,
)

__all__ = [
    "Config",
    "ConfigError",
    "DatabaseConfig",
    "EvaluationConfig",
    "LoggingConfig",
    "Manifest",
    "load_config",
    "load_manifest",
]
