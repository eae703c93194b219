"""
Logging setup for bookvault.

The ``bookvault`` logger gets a console handler on stderr and, unless
disabled, a daily log file under the configuration directory. Levels can
be raised from the environment:

    BOOKVAULT_DEBUG=1            force DEBUG
    BOOKVAULT_LOG_LEVEL=WARNING  set the console level
    BOOKVAULT_LOG_FILE=path      write to a fixed file ("disabled" turns it off)
"""

import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from bookvault.utils.paths import resolve_config_dir

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d] %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ENV_LOG_LEVEL = "BOOKVAULT_LOG_LEVEL"
ENV_DEBUG = "BOOKVAULT_DEBUG"
ENV_LOG_FILE = "BOOKVAULT_LOG_FILE"

ROOT_LOGGER_NAME = "bookvault"
LOG_FILE_PREFIX = "bookvault_"

_TRUTHY = ("1", "true", "yes")
_FILE_LOGGING_OFF = ("", "none", "disabled")
_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def get_default_log_dir() -> Path:
    return resolve_config_dir() / "logs"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name on capable terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
        stream=None,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and _stream_is_color_tty(stream or sys.stderr)

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        if color is None:
            return super().format(record)

        # Other handlers share the record, so restore the level name afterwards
        plain = record.levelname
        record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _stream_is_color_tty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    # https://no-color.org/
    if os.environ.get("NO_COLOR"):
        return False
    return os.environ.get("TERM", "") != "dumb"


def get_log_level_from_env() -> int:
    """
    Read the console log level from the environment.

    ``BOOKVAULT_DEBUG`` wins over ``BOOKVAULT_LOG_LEVEL``. Unknown level
    names fall back to INFO.

    Returns:
        A ``logging`` level constant.
    """
    if os.environ.get(ENV_DEBUG, "").lower() in _TRUTHY:
        return logging.DEBUG

    name = os.environ.get(ENV_LOG_LEVEL, "INFO").strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_log_file_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Decide where today's log lines go.

    Args:
        log_dir: Directory holding the daily files. Defaults to the
            ``logs`` directory inside the configuration directory.

    Returns:
        The log file, or None when ``BOOKVAULT_LOG_FILE`` disables it.
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is not None:
        return None if override.lower() in _FILE_LOGGING_OFF else Path(override)

    stamp = date.today().strftime("%Y%m%d")
    return (log_dir or get_default_log_dir()) / f"{LOG_FILE_PREFIX}{stamp}.log"


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    # The file keeps everything so failed imports can be diagnosed afterwards
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the ``bookvault`` logger for a CLI run.

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Console level. Read from the environment when None.
        verbose: Force DEBUG and include source locations on the console.
        log_dir: Directory for the daily log file.
        log_file: Explicit log file, overriding ``log_dir``.
        enable_file_logging: Skip the file handler when False.
        use_colors: Color level names when stderr is a terminal.

    Returns:
        The configured package logger.
    """
    if verbose:
        level = logging.DEBUG
    elif level is None:
        level = get_log_level_from_env()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if enable_file_logging else level)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(
        ColoredFormatter(
            VERBOSE_FORMAT if verbose else CONSOLE_FORMAT,
            DATE_FORMAT,
            use_colors=use_colors,
        )
    )
    logger.addHandler(console)

    if not enable_file_logging:
        return logger

    path = log_file or get_log_file_path(log_dir)
    if path is None:
        return logger
    try:
        logger.addHandler(_file_handler(path))
    except OSError as e:
        logger.warning(f"Could not open log file {path}: {e}")
    else:
        logger.debug(f"Logging to {path}")
    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Delete daily log files beyond the newest ``keep_count``.

    Args:
        log_dir: Directory holding the daily files.
        keep_count: Files to keep. Zero or less keeps everything.

    Returns:
        Number of files deleted.
    """
    directory = log_dir or get_default_log_dir()
    if keep_count <= 0 or not directory.is_dir():
        return 0

    by_age = sorted(
        directory.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    deleted = 0
    for stale in by_age[keep_count:]:
        try:
            stale.unlink()
        except OSError as e:
            get_logger(__name__).debug(f"Could not delete {stale}: {e}")
            continue
        deleted += 1
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the ``bookvault`` hierarchy for ``name``."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = [
    "setup_logging",
    "get_logger",
    "cleanup_old_logs",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "get_default_log_dir",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
]
