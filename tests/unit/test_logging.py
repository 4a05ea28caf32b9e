"""Tests for the logging system.

This module tests:
1. Console-only and file logging setup
2. Log level configuration
3. Log file naming
4. Handler de-duplication across repeated setup
"""

import logging
from datetime import datetime

import pytest

from strategy_compiler.core.config import Config, LoggingConfig, LogLevel
from strategy_compiler.core.logging import (
    DEFAULT_LOGGER_NAME,
    LOG_FILE_EXTENSION,
    LOG_FILE_PREFIX,
    LogManager,
    get_logger,
    setup_logging,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def debug_config():
    """Create a config with DEBUG level."""
    return Config(logging=LoggingConfig(level=LogLevel.DEBUG))


@pytest.fixture(autouse=True)
def cleanup_loggers():
    """Clean up loggers after each test to avoid handler accumulation."""
    yield
    for name in [DEFAULT_LOGGER_NAME, "custom_logger", "test_logger"]:
        logger = logging.getLogger(name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)


# =============================================================================
# TEST SETUP_LOGGING FUNCTION
# =============================================================================


class TestSetupLogging:
    """Test the setup_logging function."""

    def test_returns_logger(self):
        """Test that setup_logging returns the package logger."""
        logger = setup_logging()
        assert isinstance(logger, logging.Logger)
        assert logger.name == DEFAULT_LOGGER_NAME

    def test_console_only_without_log_dir(self):
        """Test only a stream handler is attached without a log directory."""
        logger = setup_logging()
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_creates_log_directory(self, tmp_path):
        """Test that the log directory is created."""
        log_dir = tmp_path / "logs"
        setup_logging(log_dir=log_dir)
        assert log_dir.is_dir()

    def test_writes_log_file(self, tmp_path):
        """Test messages land in today's log file."""
        logger = setup_logging(log_dir=tmp_path)
        logger.info("Compiling strategy")
        for handler in logger.handlers:
            handler.flush()

        today = datetime.now().strftime("%Y-%m-%d")
        log_file = tmp_path / f"{LOG_FILE_PREFIX}-{today}{LOG_FILE_EXTENSION}"
        assert log_file.exists()
        assert "Compiling strategy" in log_file.read_text()

    def test_custom_name(self):
        """Test setup_logging with a custom logger name."""
        assert setup_logging(name="custom_logger").name == "custom_logger"

    def test_level_from_config(self, debug_config):
        """Test the configured level is applied."""
        logger = setup_logging(config=debug_config)
        assert logger.level == logging.DEBUG

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        """Test handlers are attached once."""
        setup_logging(log_dir=tmp_path)
        logger = setup_logging(log_dir=tmp_path)
        assert len(logger.handlers) == 2

    def test_child_loggers_propagate(self, tmp_path):
        """Test module loggers under the package write to the same file."""
        logger = setup_logging(log_dir=tmp_path)
        logging.getLogger(f"{DEFAULT_LOGGER_NAME}.codegen.generator").warning("child message")
        for handler in logger.handlers:
            handler.flush()
        log_file = LogManager(log_dir=tmp_path).get_log_file_path()
        assert "child message" in log_file.read_text()


# =============================================================================
# TEST GET_LOGGER FUNCTION
# =============================================================================


class TestGetLogger:
    """Test the get_logger function."""

    def test_default_name(self):
        """Test that get_logger returns the package logger by default."""
        assert get_logger().name == DEFAULT_LOGGER_NAME

    def test_same_instance(self):
        """Test that get_logger returns the same logger for the same name."""
        assert get_logger("test_logger") is get_logger("test_logger")


# =============================================================================
# TEST LOG MANAGER CLASS
# =============================================================================


class TestLogManager:
    """Test the LogManager class."""

    def test_defaults(self):
        """Test a manager without arguments uses default config and no files."""
        manager = LogManager()
        assert manager.config.logging.level == "INFO"
        assert manager.log_dir is None

    def test_log_file_name(self, tmp_path):
        """Test log files follow the prefix-date naming scheme."""
        path = LogManager(log_dir=tmp_path).get_log_file_path()
        today = datetime.now().strftime("%Y-%m-%d")
        assert path == tmp_path / f"strategy-compiler-{today}.log"

    def test_log_file_path_without_dir(self):
        """Test asking for a file path without a directory fails."""
        with pytest.raises(ValueError, match="no log directory"):
            LogManager().get_log_file_path()
