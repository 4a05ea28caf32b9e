"""Configuration and logging for strategy-compiler."""

from strategy_compiler.core.config import (
    Config,
    ConfigurationError,
    LeverageConfig,
    LimitsConfig,
    LoggingConfig,
    LogLevel,
    OutputConfig,
    get_default_config,
    load_config,
    validate_config,
)
from strategy_compiler.core.logging import LogManager, get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigurationError",
    "LeverageConfig",
    "LimitsConfig",
    "LoggingConfig",
    "LogLevel",
    "OutputConfig",
    "get_default_config",
    "load_config",
    "validate_config",
    "LogManager",
    "get_logger",
    "setup_logging",
]
