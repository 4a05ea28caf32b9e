"""Compiler settings read from strategy-compiler.yaml.

Sections:
- limits: ceilings checked against every incoming document
- leverage: value used when a document has no unconditional leverage rule
- output: timeframe default and post-render syntax check
- logging: level and format

A missing file means defaults; a partial file is merged over them.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

CONFIG_FILENAME = "strategy-compiler.yaml"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================


class LimitsConfig(BaseModel):
    """Hard ceilings applied to untrusted documents before traversal.

    ``max_nodes`` counts JSON containers (objects and arrays) and
    ``max_depth`` their nesting depth. ``max_list_items`` bounds the total
    number of array elements, scalars included, across the whole document.
    """

    max_nodes: int = Field(10_000, ge=1, le=1_000_000, description="Maximum container count")
    max_depth: int = Field(64, ge=4, le=256, description="Maximum nesting depth")
    max_list_items: int = Field(
        10_000, ge=1, le=1_000_000, description="Maximum total array elements"
    )
    max_string_chars: int = Field(
        1_000_000, ge=1, description="Maximum total characters across all strings"
    )
    max_class_name_length: int = Field(
        100, ge=1, le=255, description="Maximum length of the generated class name"
    )


class LeverageConfig(BaseModel):
    """Leverage callback generation settings."""

    fallback_leverage: float = Field(
        1.0,
        gt=0,
        description="Value returned when no unconditional rule exists (1.0 = no leverage)",
    )


class OutputConfig(BaseModel):
    """Generated module settings."""

    default_timeframe: str = Field(
        "5m", pattern=r"^[0-9]+[smhdwM]$", description="Timeframe when the document sets none"
    )
    validate_syntax: bool = Field(
        True, description="Parse generated code before returning it"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Logging level")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )


class Config(BaseModel):
    """All compiler settings."""

    version: str = Field("1.0", description="Settings file format version")
    limits: LimitsConfig = Field(
        default_factory=LimitsConfig, description="Document size ceilings"
    )
    leverage: LeverageConfig = Field(
        default_factory=LeverageConfig, description="Leverage callback settings"
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig, description="Generated module settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @model_validator(mode="after")
    def check_class_name_fits(self) -> "Config":
        if self.limits.max_class_name_length > self.limits.max_string_chars:
            raise ValueError("limits.max_class_name_length exceeds limits.max_string_chars")
        return self


# =============================================================================
# DEFAULT CONFIGURATION
# =============================================================================


def get_default_config() -> Config:
    """Settings used when no strategy-compiler.yaml is found."""
    return Config()


# =============================================================================
# CONFIG LOADING
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay user settings on defaults; nested sections merge, lists replace."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None) -> Config:
    """Read compiler settings.

    Args:
        path: Settings file; defaults to strategy-compiler.yaml in the
            working directory. A missing file yields the defaults.

    Returns:
        Validated Config

    Raises:
        ConfigurationError: On unreadable files, bad YAML or invalid values
    """
    settings_path = Path.cwd() / CONFIG_FILENAME if path is None else Path(path)
    if not settings_path.exists():
        return get_default_config()

    try:
        with open(settings_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {settings_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {settings_path}: {e}") from e

    if raw is None:
        return get_default_config()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{settings_path} must contain a mapping at the top level")

    try:
        return Config.model_validate(_deep_merge(get_default_config().model_dump(), raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {settings_path}: {e}") from e


# =============================================================================
# CONFIG VALIDATION
# =============================================================================


def validate_config(config: Config) -> list[str]:
    """Check a configuration for settings that are legal but risky.

    Args:
        config: Configuration to validate

    Returns:
        List of warning messages. Empty list if nothing looks off.
    """
    warnings: list[str] = []

    if config.leverage.fallback_leverage > 1.0:
        warnings.append(
            f"leverage.fallback_leverage={config.leverage.fallback_leverage} applies "
            "leverage to strategies that never asked for it. Consider 1.0."
        )

    if config.limits.max_depth > 128:
        warnings.append(
            f"limits.max_depth={config.limits.max_depth} is deep enough that "
            "pathological documents may be slow to validate."
        )

    if config.limits.max_nodes > 100_000:
        warnings.append(
            f"limits.max_nodes={config.limits.max_nodes} allows very large documents. "
            "Builder documents rarely exceed a few thousand nodes."
        )

    if not config.output.validate_syntax:
        warnings.append(
            "output.validate_syntax=false may return code that does not parse."
        )

    return warnings
