"""
Tests for the logging configuration module.
"""

import logging
import os
import time
from pathlib import Path
from unittest.mock import patch

from bookvault.utils.logging import (
    CONSOLE_FORMAT,
    LOG_FILE_PREFIX,
    ColoredFormatter,
    cleanup_old_logs,
    get_log_file_path,
    get_log_level_from_env,
    get_logger,
    setup_logging,
)


class TestGetLogLevelFromEnv:
    """Tests for get_log_level_from_env function."""

    @patch.dict(os.environ, {"BOOKVAULT_DEBUG": "true"}, clear=False)
    def test_debug_mode_from_env(self):
        """Debug flag selects DEBUG."""
        assert get_log_level_from_env() == logging.DEBUG

    @patch.dict(
        os.environ,
        {"BOOKVAULT_LOG_LEVEL": "WARN", "BOOKVAULT_DEBUG": ""},
        clear=False,
    )
    def test_warn_alias_for_warning(self):
        """WARN is an alias for WARNING."""
        assert get_log_level_from_env() == logging.WARNING

    @patch.dict(
        os.environ,
        {"BOOKVAULT_LOG_LEVEL": "INVALID", "BOOKVAULT_DEBUG": ""},
        clear=False,
    )
    def test_invalid_level_defaults_to_info(self):
        """Unknown levels fall back to INFO."""
        assert get_log_level_from_env() == logging.INFO


class TestGetLogFilePath:
    """Tests for get_log_file_path function."""

    @patch.dict(os.environ, {"BOOKVAULT_LOG_FILE": "/custom/path/app.log"})
    def test_custom_log_file_from_env(self):
        """Explicit log file from environment wins."""
        assert get_log_file_path() == Path("/custom/path/app.log")

    @patch.dict(os.environ, {"BOOKVAULT_LOG_FILE": "disabled"})
    def test_log_file_disabled(self):
        """'disabled' turns file logging off."""
        assert get_log_file_path() is None

    def test_daily_file_in_log_dir(self, tmp_path):
        """Without an override the daily file lives in log_dir."""
        with patch.dict(os.environ, {}, clear=True):
            path = get_log_file_path(tmp_path)
        assert path is not None
        assert path.parent == tmp_path
        assert path.name.startswith(LOG_FILE_PREFIX)
        assert path.suffix == ".log"


class TestColoredFormatter:
    """Tests for ColoredFormatter class."""

    def test_format_record_without_colors(self):
        """Without colors the message is unchanged."""
        formatter = ColoredFormatter("%(levelname)s: %(message)s", use_colors=False)
        record = logging.LogRecord(
            "bookvault", logging.INFO, __file__, 1, "hello", None, None
        )
        assert formatter.format(record) == "INFO: hello"


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_returns_package_logger(self):
        """setup_logging configures the bookvault logger."""
        logger = setup_logging(enable_file_logging=False)
        assert logger.name == "bookvault"
        assert logger.propagate is False

    def test_setup_logging_with_verbose(self):
        """Verbose mode forces DEBUG."""
        logger = setup_logging(verbose=True, enable_file_logging=False)
        assert logger.level == logging.DEBUG

    def test_setup_logging_clears_handlers(self):
        """Repeated setup leaves a single console handler."""
        setup_logging(enable_file_logging=False)
        logger = setup_logging(enable_file_logging=False)
        assert len(logger.handlers) == 1

    def test_setup_logging_with_file(self, tmp_path):
        """File logging adds a handler and writes the file."""
        log_file = tmp_path / "test.log"
        logger = setup_logging(
            log_file=log_file, enable_file_logging=True, use_colors=False
        )
        assert len(logger.handlers) == 2
        logger.info("Test message")
        assert log_file.exists()
        setup_logging(enable_file_logging=False)


class TestCleanupOldLogs:
    """Tests for cleanup_old_logs function."""

    def test_keeps_newest(self, tmp_path):
        """Only the newest keep_count log files survive."""
        for day in range(1, 5):
            log = tmp_path / f"{LOG_FILE_PREFIX}2026010{day}.log"
            log.write_text("x")
            stamp = time.time() - (10 - day) * 60
            os.utime(log, (stamp, stamp))

        deleted = cleanup_old_logs(tmp_path, keep_count=2)

        assert deleted == 2
        remaining = sorted(p.name for p in tmp_path.iterdir())
        assert remaining == [
            f"{LOG_FILE_PREFIX}20260103.log",
            f"{LOG_FILE_PREFIX}20260104.log",
        ]

    def test_zero_disables_cleanup(self, tmp_path):
        """keep_count=0 deletes nothing."""
        (tmp_path / f"{LOG_FILE_PREFIX}20260101.log").write_text("x")
        assert cleanup_old_logs(tmp_path, keep_count=0) == 0

    def test_missing_dir(self, tmp_path):
        """A missing directory is not an error."""
        assert cleanup_old_logs(tmp_path / "missing", keep_count=1) == 0




class TestColoredLevels:
    """Tests for level coloring."""

    def test_level_name_restored_after_format(self):
        """Coloring does not leak into handlers that format the record later."""
        formatter = ColoredFormatter(CONSOLE_FORMAT)
        formatter.use_colors = True
        record = logging.LogRecord(
            "bookvault", logging.WARNING, __file__, 1, "careful", None, None
        )

        colored = formatter.format(record)

        assert colored.startswith("\033[33mWARNING")
        assert record.levelname == "WARNING"
        assert record.getMessage() == "careful"


class TestGetLogger:
    """Tests for get_logger function."""

    def test_prefixes_other_names(self):
        """Names outside the package are nested under it."""
        assert get_logger("mymodule").name == "bookvault.mymodule"

    def test_keeps_package_names(self):
        """Package module names and the package itself are kept."""
        assert get_logger("bookvault.merge").name == "bookvault.merge"
        assert get_logger("bookvault").name == "bookvault"

    def test_similar_prefix_is_nested(self):
        """A name that only starts with the package text is nested."""
        assert get_logger("bookvaultx").name == "bookvault.bookvaultx"
