"""Logging setup for the compiler and its CLI.

Every module logs through ``logging.getLogger(__name__)``, so configuring the
``strategy_compiler`` logger once covers the whole package. Handlers:

- a console handler at the configured level and format
- a TimedRotatingFileHandler writing strategy-compiler-YYYY-MM-DD.log when a
  log directory is given (the CLI --log-dir option)

Example:
    logger = setup_logging(config, log_dir=Path("logs"))
    get_logger("strategy_compiler.codegen").debug("Binding indicators")
"""

from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from strategy_compiler.core.config import Config, get_default_config


# =============================================================================
# CONSTANTS
# =============================================================================

# Parent of every module logger in the package
DEFAULT_LOGGER_NAME = "strategy_compiler"

LOG_FILE_PREFIX = "strategy-compiler"
LOG_FILE_EXTENSION = ".log"

# Days of rotated files to keep
DEFAULT_BACKUP_COUNT = 30


# =============================================================================
# MODULE-LEVEL FUNCTIONS
# =============================================================================


def setup_logging(
    config: Optional[Config] = None,
    log_dir: Optional[Path] = None,
    name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Set up logging for the compiler.

    Args:
        config: Optional Config, defaults are used if not provided.
        log_dir: Directory for rotating log files; console only when None.
        name: Logger name (default: strategy_compiler).

    Returns:
        Configured logger instance.
    """
    return LogManager(config, log_dir).setup(name)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance.

    The logger may not be configured yet if setup_logging has not been
    called, in which case Python's default configuration applies.

    Args:
        name: Logger name.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


# =============================================================================
# LOG MANAGER CLASS
# =============================================================================


class LogManager:
    """Configures console and optional file handlers for a named logger.

    Attributes:
        config: Compiler configuration.
        log_dir: Directory for log files, or None for console only.
    """

    def __init__(self, config: Optional[Config] = None, log_dir: Optional[Path] = None):
        self.config = config if config is not None else get_default_config()
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self._logger: Optional[logging.Logger] = None

    def setup(self, name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
        """Set up logging with console and (optionally) file handlers.

        Handlers are only attached once per logger, so repeated calls do not
        duplicate output.

        Args:
            name: Logger name (default: strategy_compiler).

        Returns:
            Configured logger instance.
        """
        logger = logging.getLogger(name)

        log_level = getattr(logging, self.config.logging.level, logging.INFO)
        logger.setLevel(log_level)

        if not logger.handlers:
            formatter = logging.Formatter(self.config.logging.format)

            if self.log_dir is not None:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                file_handler = TimedRotatingFileHandler(
                    filename=self.get_log_file_path(),
                    when="midnight",
                    interval=1,
                    backupCount=DEFAULT_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                file_handler.suffix = "%Y-%m-%d"
                logger.addHandler(file_handler)

            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        self._logger = logger
        return logger

    def get_log_file_path(self) -> Path:
        """Get today's log file path.

        Returns:
            Path to the current log file.

        Raises:
            ValueError: If no log directory is configured.
        """
        if self.log_dir is None:
            raise ValueError("LogManager has no log directory")
        today = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"{LOG_FILE_PREFIX}-{today}{LOG_FILE_EXTENSION}"
