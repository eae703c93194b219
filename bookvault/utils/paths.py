"""
Path utilities for configuration directory resolution.

Provides consistent path resolution for the bookvault configuration
directory across all modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".bookvault"

# Environment variable for overriding config directory
CONFIG_DIR_ENV_VAR = "BOOKVAULT_CONFIG_DIR"

# Default library database file name (inside the config directory)
DEFAULT_DB_FILE = "library.db"

# Default backup directory name (inside the config directory)
DEFAULT_BACKUP_DIR_NAME = "backups"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the configuration directory path.

    Priority:
        1. Explicit config_dir parameter (if provided)
        2. BOOKVAULT_CONFIG_DIR environment variable
        3. Default directory (~/.bookvault)

    Args:
        config_dir: Optional explicit configuration directory path.
                   Can be a Path object or string.

    Returns:
        Resolved Path to the configuration directory (expanduser and resolve applied)
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()
