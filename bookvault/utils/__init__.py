"""
bookvault.utils - Utility module

Common utilities including string normalization and path resolution.
"""

from bookvault.utils.normalization import normalize_isbn, normalize_string
from bookvault.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = [
    "normalize_string",
    "normalize_isbn",
    "resolve_config_dir",
    "DEFAULT_CONFIG_DIR",
]
