"""
Configuration file generator for bookvault.

Generates a commented default configuration file documenting every
available option.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments
    """
    return """# bookvault Configuration
# =======================
#
# Default options for the bookvault command line.
# CLI arguments always override these values.

# Storage
# -------

# Path of the library database
# Default: ~/.bookvault/library.db
# db_path: ~/.bookvault/library.db


# Logging
# -------

# Enable verbose output with detailed logging
# Default: false
# verbose: false

# Directory for daily log files
# Default: ~/.bookvault/logs
# log_dir: ~/.bookvault/logs

# Number of daily log files to keep (0 = keep all)
# Default: 10
# log_retention_count: 10


# Backups
# -------

# Directory for managed backups
# Default: ~/.bookvault/backups
# backup_dir: ~/.bookvault/backups

# Number of managed backups to keep (0 = keep all)
# Default: 10
# backup_retention_count: 10

# Save a full backup of the library before every import
# Default: true
# backup_before_import: true


# Import strategy
# ---------------

# Incoming list whose name already exists
# Options: rename, overwrite, skip, merge
# Default: rename
# default_list_action: rename

# Incoming book matching an existing book (by ISBN, then title and author)
# Options: merge, skip, duplicate
# Default: merge
# default_book_action: merge

# How notes and recommendations are combined when books are merged
# Options: keepLocal, keepImported, both
# Default: both
# default_comment_merge: both

# How the other fields are combined when books are merged
# Options: preferLocal, preferImported, nonEmptyWins
# Default: nonEmptyWins
# default_field_merge: nonEmptyWins
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save default configuration file to specified path.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite existing file. If False, fail if file exists.

    Returns:
        Tuple of (success, error_message); error_message is None on success
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
